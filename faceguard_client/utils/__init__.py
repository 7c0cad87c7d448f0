"""Utilities package - Flat structure (no nested directories)"""

from .hash_utils import (
    generate_cache_key,
    generate_filter_fingerprint,
    hash_string,
    new_idempotency_key,
    normalize_criteria,
    resource_prefix,
)

__all__ = [
    "hash_string",
    "normalize_criteria",
    "generate_filter_fingerprint",
    "generate_cache_key",
    "resource_prefix",
    "new_idempotency_key",
]
