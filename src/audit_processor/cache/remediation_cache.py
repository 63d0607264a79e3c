"""Content-addressed cache for generated remediation text.

Keys are fingerprints of a finding's normalized identity, not of the audit
it came from, so a recurring issue gets the same remediation text across
audits for the lifetime of an entry.
"""
from __future__ import annotations

import hashlib
import json
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from audit_processor.config.loader import get_cache_ttl_seconds, get_evidence_prefix_chars

logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60
EVIDENCE_PREFIX_CHARS = 200


@dataclass(frozen=True)
class CacheEntry:
    value: str
    created_at: float


def fingerprint(
    title: str,
    category: str,
    severity: str,
    evidence_snippet: Optional[str] = None,
    evidence_prefix_chars: int = EVIDENCE_PREFIX_CHARS,
) -> str:
    """Deterministic SHA-256 key over the case-folded, trimmed identity tuple."""
    normalized = json.dumps(
        {
            "finding_title": (title or "").casefold().strip(),
            "category": (category or "").casefold().strip(),
            "severity": (severity or "").casefold().strip(),
            "evidence_snippet": (evidence_snippet or "")[:evidence_prefix_chars].casefold().strip(),
        },
        sort_keys=True,
    )
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


class RemediationCache:
    """TTL map from fingerprint to remediation text. Safe to share across threads."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        evidence_prefix_chars: int = EVIDENCE_PREFIX_CHARS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.evidence_prefix_chars = evidence_prefix_chars
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_config(cls) -> RemediationCache:
        return cls(
            ttl_seconds=get_cache_ttl_seconds(),
            evidence_prefix_chars=get_evidence_prefix_chars(),
        )

    def fingerprint(
        self,
        title: str,
        category: str,
        severity: str,
        evidence_snippet: Optional[str] = None,
    ) -> str:
        return fingerprint(title, category, severity, evidence_snippet, self.evidence_prefix_chars)

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.created_at > self.ttl_seconds

    def get(self, key: str) -> Optional[str]:
        """Cached text for ``key``; expired entries are evicted and read as a miss."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._is_expired(entry, self._clock()):
                del self._entries[key]
                logger.debug("remediation_cache_expired", key=key[:12])
                return None
            return entry.value

    def put(self, key: str, text: str) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=text, created_at=self._clock())

    def sweep(self) -> int:
        """Remove every expired entry. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, entry in self._entries.items() if self._is_expired(entry, now)]
            for key in expired:
                del self._entries[key]

        if expired:
            logger.info("remediation_cache_swept", removed=len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries
