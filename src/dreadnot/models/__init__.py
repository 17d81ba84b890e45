"""Pydantic models for Dreadnot settings and deployment records."""
