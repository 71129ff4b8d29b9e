"""Security utilities for input validation and sanitization."""

from .validation import (
    sanitize_log_input,
    validate_environment_variable_name,
    validate_file_path,
    validate_url,
)

__all__ = [
    "sanitize_log_input",
    "validate_environment_variable_name",
    "validate_file_path",
    "validate_url",
]
