"""Configuration loading, validation, and defaults for Dreadnot.

Main components:
- ConfigLoader: Load and validate the YAML settings file (``loader``)
- Environment variable overrides for top-level settings
- Validation utilities for configuration data (``validator``)
- Default values (``defaults``)
"""
