"""
File integrity monitoring.

Keeps a SHA-256 baseline per watched file and diffs live digests against
it on every cycle. A detected change is reported once and the baseline
is rebased to the new digest in the same step.

A failed read is never a mismatch: the path is skipped for the cycle and
retried on the next one.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Iterable, Optional

from ._types import EventKind, SecurityEvent, WatchedFile, now_utc
from .errors import TransientIOError
from .events import EventSink

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 65536


def compute_digest(path: Path | str) -> str:
    """
    SHA-256 hex digest of a file's full content.

    Raises:
        OSError: If the file cannot be read
    """
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


class ChecksumStore:
    """Baseline digests for the watched files, keyed by path."""

    def __init__(self):
        self._files: dict[str, WatchedFile] = {}

    def __contains__(self, path: str) -> bool:
        return path in self._files

    def __len__(self) -> int:
        return len(self._files)

    def establish_baseline(self, paths: Iterable[Path | str]) -> dict[str, str]:
        """
        Digest every existing path and remember it as the baseline.

        Missing paths are skipped silently. Paths that exist but cannot be
        read are tracked without a baseline and picked up on a later cycle.

        Returns:
            Mapping of path to baseline digest for the paths read
        """
        baseline = {}
        for path in paths:
            key = str(path)
            if not Path(key).exists():
                logger.debug(f"Watched file does not exist, skipping: {key}")
                continue

            watched = self._files.setdefault(key, WatchedFile(path=key))
            try:
                watched.baseline_digest = compute_digest(key)
            except OSError as e:
                logger.warning(f"Could not read {key} for baseline: {e}")
                continue

            baseline[key] = watched.baseline_digest
            logger.info(f"Baseline established for {key}")

        return baseline

    def watched(self) -> list[WatchedFile]:
        return list(self._files.values())

    def get(self, path: str) -> Optional[str]:
        watched = self._files.get(path)
        return watched.baseline_digest if watched else None

    def rebase(self, path: str, digest: str) -> None:
        self._files[path].baseline_digest = digest

    def snapshot(self) -> dict[str, Optional[str]]:
        """Copy of the current baselines."""
        return {p: w.baseline_digest for p, w in self._files.items()}


class FileIntegrityMonitor:
    """
    Diffs watched files against their baselines.

    The checksum store is owned by this monitor and only touched from
    check_integrity(), which the scheduler never runs concurrently with
    itself.
    """

    def __init__(
        self,
        paths: Iterable[Path | str],
        sink: Optional[EventSink] = None,
    ):
        self.paths = [str(p) for p in paths]
        self.sink = sink
        self.store = ChecksumStore()

    def start(self) -> dict[str, str]:
        """Establish the initial baselines."""
        baseline = self.store.establish_baseline(self.paths)
        logger.info(
            f"File integrity monitor watching {len(self.store)} of "
            f"{len(self.paths)} configured files"
        )
        return baseline

    def _read_digest(self, path: str) -> str:
        try:
            return compute_digest(path)
        except OSError as e:
            raise TransientIOError(path, str(e)) from e

    def check_integrity(self) -> list[SecurityEvent]:
        """
        Run one integrity cycle.

        Returns the file_integrity events emitted this cycle; each one has
        already been handed to the sink when a sink is configured.
        """
        events = []

        for watched in self.store.watched():
            path = watched.path
            try:
                current = self._read_digest(path)
            except TransientIOError as e:
                logger.warning(f"Skipping integrity check this cycle: {e}")
                continue

            if watched.baseline_digest is None:
                self.store.rebase(path, current)
                logger.info(f"Baseline established for {path}")
                continue

            if current == watched.baseline_digest:
                continue

            event = SecurityEvent(
                kind=EventKind.FILE_INTEGRITY,
                description=f"File modification detected: {path}",
                details={
                    "file": path,
                    "baseline": watched.baseline_digest,
                    "current": current,
                    "timestamp": now_utc().isoformat(),
                },
            )
            self.store.rebase(path, current)
            events.append(event)
            logger.warning(f"Integrity change on {path}")

            if self.sink is not None:
                self.sink.record_quietly(event)

        return events
