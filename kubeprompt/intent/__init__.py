"""Instruction parsing for the manifest pipeline."""

from .parser import (
    IntentParser,
    detect_delete_intent,
    normalize_repo_url,
    parse_resource_identifiers,
    sanitize_response,
)

__all__ = [
    "IntentParser",
    "detect_delete_intent",
    "normalize_repo_url",
    "parse_resource_identifiers",
    "sanitize_response",
]
