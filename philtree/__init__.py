"""PhilTree: a shared, procedurally grown graph of philosophical concepts."""

__version__ = "0.1.0"
