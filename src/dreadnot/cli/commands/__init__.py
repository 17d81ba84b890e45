"""Dreadnot CLI subcommands."""
