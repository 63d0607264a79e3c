"""Fire-and-forget dispatch of audit runs.

``submit`` acknowledges immediately with QUEUED and runs the processor on a
worker thread. Runs for the same audit may overlap unless
``serialize_per_audit`` is set, in which case they queue on a per-audit lock.

The dispatcher only holds state for runs still in flight: per-audit locks are
dropped once no run holds or waits on them, and results are kept for
``wait`` only when ``collect_results`` is set.
"""
from __future__ import annotations

import itertools
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_for_futures
from typing import Optional

import structlog
from pydantic import BaseModel

from audit_processor.config.loader import get_dispatch_workers
from audit_processor.models.audit import ProcessResult, ProcessStatus
from audit_processor.processor import AuditProcessor

logger = structlog.get_logger(__name__)


class DispatchAck(BaseModel):
    ok: bool = True
    audit_record_id: str
    status: ProcessStatus = ProcessStatus.QUEUED


class _AuditLock:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = threading.Lock()
        self.users = 0


class AuditDispatcher:
    """Runs ``AuditProcessor.run`` off the caller's path on a thread pool."""

    def __init__(
        self,
        processor: AuditProcessor,
        max_workers: Optional[int] = None,
        serialize_per_audit: bool = False,
        collect_results: bool = False,
    ):
        self.processor = processor
        self.serialize_per_audit = serialize_per_audit
        self.collect_results = collect_results
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or get_dispatch_workers(),
            thread_name_prefix="audit-run",
        )
        self._state_lock = threading.Lock()
        self._sequence = itertools.count()
        self._inflight: dict[int, Future] = {}
        self._results: dict[int, ProcessResult] = {}
        self._audit_locks: dict[str, _AuditLock] = {}

    def submit(self, audit_record_id: str) -> DispatchAck:
        # The worker's cleanup blocks on _state_lock, so it cannot run before
        # the future is registered.
        with self._state_lock:
            seq = next(self._sequence)
            future = self._executor.submit(self._run, seq, audit_record_id)
            self._inflight[seq] = future
        future.add_done_callback(lambda f: self._log_outcome(audit_record_id, f))
        logger.info("audit_dispatched", audit_record_id=audit_record_id)
        return DispatchAck(audit_record_id=audit_record_id)

    @property
    def inflight(self) -> int:
        with self._state_lock:
            return len(self._inflight)

    def _acquire_audit_lock(self, audit_record_id: str) -> _AuditLock:
        with self._state_lock:
            entry = self._audit_locks.get(audit_record_id)
            if entry is None:
                entry = self._audit_locks[audit_record_id] = _AuditLock()
            entry.users += 1
        entry.lock.acquire()
        return entry

    def _release_audit_lock(self, audit_record_id: str, entry: _AuditLock) -> None:
        entry.lock.release()
        with self._state_lock:
            entry.users -= 1
            if entry.users == 0:
                del self._audit_locks[audit_record_id]

    def _run(self, seq: int, audit_record_id: str) -> ProcessResult:
        result: Optional[ProcessResult] = None
        try:
            if not self.serialize_per_audit:
                result = self.processor.run(audit_record_id)
                return result
            entry = self._acquire_audit_lock(audit_record_id)
            try:
                result = self.processor.run(audit_record_id)
            finally:
                self._release_audit_lock(audit_record_id, entry)
            return result
        finally:
            with self._state_lock:
                self._inflight.pop(seq, None)
                if self.collect_results and result is not None:
                    self._results[seq] = result

    @staticmethod
    def _log_outcome(audit_record_id: str, future: Future) -> None:
        if future.cancelled():
            logger.warning("audit_dispatch_cancelled", audit_record_id=audit_record_id)
            return
        error = future.exception()
        if error is not None:
            logger.error("audit_dispatch_error", audit_record_id=audit_record_id, error=str(error))
            return
        result: ProcessResult = future.result()
        logger.info(
            "audit_dispatch_finished",
            audit_record_id=audit_record_id,
            status=result.status.value,
            ok=result.ok,
        )

    def wait(self, timeout: Optional[float] = None) -> list[ProcessResult]:
        """Block until in-flight runs finish and drain collected results.

        Results come back in submission order; runs that raised are skipped.
        Without ``collect_results`` this only waits and returns an empty list.
        """
        with self._state_lock:
            pending = list(self._inflight.values())
        wait_for_futures(pending, timeout=timeout)

        with self._state_lock:
            results = [self._results[seq] for seq in sorted(self._results)]
            self._results.clear()
        return results

    def shutdown(self, wait_for_runs: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_runs)

    def __enter__(self) -> AuditDispatcher:
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()
