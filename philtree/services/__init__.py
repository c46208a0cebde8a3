"""Graph services."""
