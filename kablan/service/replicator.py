"""
Cross-directory replication of collection files.

After the canonical copy of a collection is written, the same bytes are
pushed to every other candidate directory on a background thread pool.
Replicas are only read at startup (directory resolution) and by the
maintenance tools, so a lagging or failed replica never affects callers.
"""

from __future__ import annotations

import logging
import os
import threading
from collections import defaultdict
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


class Replicator:
    """Best-effort fan-out of collection writes to non-canonical directories."""

    def __init__(self, candidates: Sequence[Path], max_workers: int = 2):
        self.candidates: List[Path] = [Path(candidate) for candidate in candidates]
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="kablan-replica")
        self._guard = threading.Lock()
        self._target_locks: Dict[Path, threading.Lock] = defaultdict(threading.Lock)
        self._generation: Dict[str, int] = defaultdict(int)
        self._written: Dict[Tuple[Path, str], int] = {}
        self._pending: List[Future] = []
        self.failures: Dict[str, Dict[str, str]] = {}

    def submit(self, name: str, payload: str, exclude_dir: Path) -> Future:
        """Queue replication of ``payload`` (serialized collection text)."""
        with self._guard:
            self._generation[name] += 1
            generation = self._generation[name]
            future = self._executor.submit(self._replicate, name, payload, Path(exclude_dir), generation)
            self._pending = [pending for pending in self._pending if not pending.done()]
            self._pending.append(future)
        return future

    def replicate(self, name: str, payload: str, exclude_dir: Path) -> Dict[str, bool]:
        """Replicate synchronously; returns target path -> success."""
        with self._guard:
            self._generation[name] += 1
            generation = self._generation[name]
        return self._replicate(name, payload, Path(exclude_dir), generation)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for queued replication jobs. Returns False on timeout."""
        with self._guard:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self) -> None:
        self._executor.shutdown(wait=True)

    def _replicate(self, name: str, payload: str, exclude_dir: Path, generation: int) -> Dict[str, bool]:
        results: Dict[str, bool] = {}
        excluded = _same_dir_key(exclude_dir)
        for target in self.candidates:
            if _same_dir_key(target) == excluded:
                continue
            results[str(target)] = self._write_target(target, name, payload, generation)
        return results

    def _write_target(self, target: Path, name: str, payload: str, generation: int) -> bool:
        with self._guard:
            lock = self._target_locks[target]
        with lock:
            key = (target, name)
            if self._written.get(key, 0) > generation:
                # A newer version already reached this target.
                return True
            path = target / f"{name}.json"
            tmp_path = path.with_suffix(".replica.tmp")
            try:
                target.mkdir(parents=True, exist_ok=True)
                tmp_path.write_text(payload, encoding="utf-8")
                os.replace(tmp_path, path)
            except OSError as exc:
                logger.error("Replication of %s to %s failed: %s", name, target, exc)
                self.failures[str(path)] = {
                    "error": str(exc),
                    "at": datetime.now(timezone.utc).isoformat(),
                }
                return False
            self._written[key] = generation
            self.failures.pop(str(path), None)
        logger.debug("Replicated %s to %s", name, target)
        return True


def _same_dir_key(path: Path) -> str:
    return os.path.normcase(os.path.abspath(path))
