"""Tests for the remediation text cache."""
from __future__ import annotations

import threading

from audit_processor.cache.remediation_cache import DEFAULT_TTL_SECONDS, RemediationCache, fingerprint


class TestFingerprint:
    """Deterministic keys over normalized finding identity."""

    def test_case_and_whitespace_insensitive(self):
        a = fingerprint("Missing HTTPS Redirect", "Security", "HIGH", "  <a href='http://x'>")
        b = fingerprint("  missing https redirect ", "SECURITY", "high", "<A HREF='HTTP://X'>")
        assert a == b

    def test_evidence_trimmed_to_prefix(self):
        prefix = "x" * 200
        assert fingerprint("t", "c", "LOW", prefix + "tail one") == fingerprint("t", "c", "LOW", prefix + "other")

    def test_missing_evidence_equals_empty(self):
        assert fingerprint("t", "c", "LOW", None) == fingerprint("t", "c", "LOW", "")

    def test_each_component_changes_key(self):
        base = fingerprint("title", "category", "HIGH", "evidence")
        assert fingerprint("title2", "category", "HIGH", "evidence") != base
        assert fingerprint("title", "category2", "HIGH", "evidence") != base
        assert fingerprint("title", "category", "LOW", "evidence") != base
        assert fingerprint("title", "category", "HIGH", "evidence2") != base

    def test_key_is_sha256_hex(self):
        key = fingerprint("t", "c", "INFO")
        assert len(key) == 64
        int(key, 16)

    def test_instance_fingerprint_matches_module(self):
        cache = RemediationCache()
        assert cache.fingerprint("t", "c", "INFO", "e") == fingerprint("t", "c", "INFO", "e")


class TestTtl:
    """Time-based expiry."""

    def test_put_then_get(self, clock):
        cache = RemediationCache(clock=clock)
        cache.put("k", "Enable HSTS.")
        assert cache.get("k") == "Enable HSTS."

    def test_miss_when_never_set(self, clock):
        assert RemediationCache(clock=clock).get("nope") is None

    def test_entry_valid_until_ttl_boundary(self, clock):
        cache = RemediationCache(clock=clock)
        cache.put("k", "text")
        clock.advance(DEFAULT_TTL_SECONDS)
        assert cache.get("k") == "text"

    def test_get_after_ttl_returns_none_and_evicts(self, clock):
        cache = RemediationCache(clock=clock)
        cache.put("k", "text")
        clock.advance(DEFAULT_TTL_SECONDS + 1)

        assert cache.get("k") is None
        assert "k" not in cache
        assert len(cache) == 0

    def test_put_refreshes_timestamp(self, clock):
        cache = RemediationCache(ttl_seconds=10, clock=clock)
        cache.put("k", "old")
        clock.advance(8)
        cache.put("k", "new")
        clock.advance(8)
        assert cache.get("k") == "new"

    def test_sweep_removes_only_expired(self, clock):
        cache = RemediationCache(ttl_seconds=10, clock=clock)
        cache.put("old", "a")
        clock.advance(6)
        cache.put("fresh", "b")
        clock.advance(6)

        assert cache.sweep() == 1
        assert "old" not in cache
        assert cache.get("fresh") == "b"
        assert cache.sweep() == 0


class TestConcurrency:
    def test_concurrent_puts_are_consistent(self):
        cache = RemediationCache()

        def writer(n: int) -> None:
            for i in range(200):
                cache.put(f"{n}-{i}", str(i))
                cache.get(f"{n}-{i}")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(cache) == 8 * 200
        assert cache.get("7-199") == "199"
