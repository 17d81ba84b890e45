"""Shared utilities and error handling for Dreadnot."""
