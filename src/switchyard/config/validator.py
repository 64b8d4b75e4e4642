"""Validation utilities for Switchyard configuration."""

from pydantic import ValidationError as PydanticValidationError


def flatten_pydantic_errors(exc: PydanticValidationError) -> list[str]:
    """Flatten a pydantic ValidationError into one readable line per field.

    Args:
        exc: Pydantic ValidationError exception

    Returns:
        Messages such as ``Field 'docker.container_port': ...``
    """
    errors: list[str] = []

    for error in exc.errors():
        loc = error.get("loc", ())
        field_path = ".".join(str(item) for item in loc) if loc else "unknown"
        msg = error.get("msg", "Unknown error")

        if error.get("type") in ("value_error", "literal_error", "int_parsing"):
            errors.append(
                f"Field '{field_path}': {msg} (received: {error.get('input')!r})"
            )
        else:
            errors.append(f"Field '{field_path}': {msg}")

    return errors if errors else ["Validation failed with unknown error"]
