"""
Input validation for identifiers and paging arguments at the service boundary.
"""

import re
from pathlib import Path

# Uploaded file ids and record ids: letters, digits, dash, underscore, dot
IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]{1,255}$")


class InputValidationError(ValueError):
    """Raised when a caller-supplied argument is invalid."""
    pass


def validate_identifier(value: str, kind: str = "id") -> str:
    """
    Validate a record or file identifier.

    Args:
        value: Identifier to validate
        kind: What the identifier names, used in messages

    Returns:
        The stripped identifier

    Raises:
        InputValidationError: If the identifier is empty, too long or has unsafe characters
    """
    if not isinstance(value, str) or not value.strip():
        raise InputValidationError(f"{kind} must be a non-empty string")

    value = value.strip()
    if ".." in value or not IDENTIFIER_PATTERN.match(value):
        raise InputValidationError(
            f"Invalid {kind} '{value}'. Use letters, digits, '-', '_' or '.' (max 255 chars)"
        )
    return value


def validate_limit(limit: int, max_limit: int = 1000) -> int:
    """
    Raises:
        InputValidationError: If limit is not in 1..max_limit
    """
    if not isinstance(limit, int) or isinstance(limit, bool):
        raise InputValidationError(f"limit must be an integer, got {type(limit).__name__}")
    if limit < 1 or limit > max_limit:
        raise InputValidationError(f"limit must be between 1 and {max_limit}, got {limit}")
    return limit


def validate_offset(offset: int) -> int:
    """
    Raises:
        InputValidationError: If offset is negative
    """
    if not isinstance(offset, int) or isinstance(offset, bool):
        raise InputValidationError(f"offset must be an integer, got {type(offset).__name__}")
    if offset < 0:
        raise InputValidationError(f"offset must be non-negative, got {offset}")
    return offset


def resolve_upload_path(upload_dir: str | Path, file_id: str) -> Path:
    """
    Resolve an uploaded file id to a path inside the upload directory.

    Args:
        upload_dir: Directory holding uploads
        file_id: Uploaded file identifier (file name)

    Returns:
        Absolute path of the file

    Raises:
        InputValidationError: If the id is invalid or escapes the upload directory
        FileNotFoundError: If the file does not exist
    """
    file_id = validate_identifier(file_id, "file id")
    base = Path(upload_dir).resolve()
    path = (base / file_id).resolve()
    if base not in path.parents:
        raise InputValidationError(f"file id '{file_id}' resolves outside the upload directory")
    if not path.is_file():
        raise FileNotFoundError(f"Uploaded file not found: {file_id}")
    return path
