"""Command line interface for Dreadnot."""
