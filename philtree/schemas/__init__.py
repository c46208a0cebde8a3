"""Pydantic schemas for API bodies and language-model output."""
