"""Validation utilities for Dreadnot configuration."""

from pydantic import ValidationError as PydanticValidationError

_VALUE_ERROR_PREFIX = "Value error, "


def _field_path(parts: tuple[int | str, ...]) -> str:
    """Join a location into ``name.sub[0]`` form."""
    path = ""
    for part in parts:
        if isinstance(part, int):
            path += f"[{part}]"
        else:
            path += f".{part}" if path else str(part)
    return path


def describe_location(loc: tuple[int | str, ...]) -> str:
    """Describe where in the settings file an error occurred.

    Errors under ``stacks`` name the stack, and errors under a stack's
    ``region_overrides`` also name the region::

        ("env",)                                       -> Field 'env'
        ("stacks", "api", "regions", 0)                -> Stack 'api', field 'regions[0]'
        ("stacks", "api", "region_overrides", "lon", "dryrun")
            -> Stack 'api', region 'lon', field 'dryrun'
    """
    if not loc:
        return "Settings"

    if len(loc) >= 2 and loc[0] == "stacks":
        stack, rest = loc[1], loc[2:]
        prefix = f"Stack '{stack}'"
        if len(rest) >= 2 and rest[0] == "region_overrides":
            prefix += f", region '{rest[1]}'"
            rest = rest[2:]
        return f"{prefix}, field '{_field_path(rest)}'" if rest else prefix

    return f"Field '{_field_path(loc)}'"


def flatten_pydantic_errors(exc: PydanticValidationError) -> list[str]:
    """Flatten a Pydantic ValidationError into one message per settings error.

    Args:
        exc: Pydantic ValidationError exception

    Returns:
        Messages such as ``Stack 'api', field 'tip_ttl': Input should be
        greater than or equal to 0``
    """
    errors: list[str] = []

    for error in exc.errors():
        where = describe_location(tuple(error.get("loc", ())))
        msg = error.get("msg", "Unknown error")

        if error.get("type") == "value_error":
            msg = msg.removeprefix(_VALUE_ERROR_PREFIX)
            errors.append(f"{where}: {msg} (received: {error.get('input')!r})")
        else:
            errors.append(f"{where}: {msg}")

    return errors or ["Settings failed validation"]
