"""
Redis key generation functions for the collekt cache.

All collection keys follow the pattern:
    collekt:tokens:{kind}:{subject_id}:{filter_hash}

Every page of one subject+filter combination shares a single entry, which
holds the full filtered set. These functions are the SINGLE SOURCE OF TRUTH
for key generation, used by both lookups and invalidation.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass

from collekt.models.contracts.collections import SubjectKind
from collekt.models.contracts.filters import TokenFilters

KEY_PREFIX = "collekt:tokens"

# Default TTL for collection entries (1 hour); 0 disables expiry
TTL_COLLECTION = 3600


def _kind_value(kind: SubjectKind | str) -> str:
    return kind.value if isinstance(kind, SubjectKind) else str(kind)


# =============================================================================
# Collection Keys
# =============================================================================


def collection_key(kind: SubjectKind | str, subject_id: str, filter_hash: str) -> str:
    """Key for the entry of one subject under one filter configuration."""
    return f"{KEY_PREFIX}:{_kind_value(kind)}:{subject_id}:{filter_hash}"


_GLOB_SPECIAL = frozenset("*?[]\\")


def escape_glob(value: str) -> str:
    """Backslash-escape Redis glob metacharacters so ``value`` matches literally."""
    return "".join(f"\\{ch}" if ch in _GLOB_SPECIAL else ch for ch in value)


def subject_pattern(subject_id: str, kind: SubjectKind | str | None = None) -> str:
    """
    SCAN pattern matching every entry of a subject.

    Without ``kind`` the pattern spans all subject kinds, since callers that
    clear caches often only hold the identifier. The subject id is matched
    literally.
    """
    kind_part = _kind_value(kind) if kind is not None else "*"
    return f"{KEY_PREFIX}:{kind_part}:{escape_glob(subject_id)}:*"


def all_collections_pattern() -> str:
    return f"{KEY_PREFIX}:*"


def parse_collection_key(key: str) -> tuple[str, str, str] | None:
    """
    Split a collection key into (kind, subject_id, filter_hash).

    Returns None for keys outside the collection namespace.
    """
    prefix = f"{KEY_PREFIX}:"
    if not key.startswith(prefix):
        return None
    parts = key[len(prefix):].split(":")
    if len(parts) != 3:
        return None
    return parts[0], parts[1], parts[2]


# =============================================================================
# Fingerprints
# =============================================================================


@dataclass(frozen=True)
class Fingerprint:
    """
    Identity of one collection request.

    ``digest`` identifies the exact page requested; ``entry_key`` addresses
    the stored entry shared by all pages of the subject+filter family.
    """

    kind: SubjectKind
    subject_id: str
    filter_hash: str
    page: int
    page_size: int

    def canonical(self) -> str:
        return json.dumps(
            {
                "kind": self.kind.value,
                "subject_id": self.subject_id,
                "filter_hash": self.filter_hash,
                "page": self.page,
                "page_size": self.page_size,
            },
            sort_keys=True,
            separators=(",", ":"),
        )

    @property
    def digest(self) -> str:
        return hashlib.sha256(self.canonical().encode()).hexdigest()

    @property
    def entry_key(self) -> str:
        return collection_key(self.kind, self.subject_id, self.filter_hash)


def fingerprint(
    kind: SubjectKind | str,
    subject_id: str,
    filters: TokenFilters | str,
    page: int,
    page_size: int,
) -> Fingerprint:
    """
    Build the fingerprint of a collection request.

    Args:
        kind: Subject kind
        subject_id: Address, contract or curation id
        filters: Filter configuration, or its precomputed filter hash
        page: 1-based page number
        page_size: Items per page
    """
    filter_hash = filters.filter_hash() if isinstance(filters, TokenFilters) else filters
    return Fingerprint(
        kind=SubjectKind(kind),
        subject_id=subject_id,
        filter_hash=filter_hash,
        page=page,
        page_size=page_size,
    )
