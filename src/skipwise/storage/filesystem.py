"""Filesystem-backed content store kept in ``.skipwise/`` at the project root.

Layout::

    .skipwise/
        LATEST                 id of the most recent snapshot
        snapshots/<id>.json    canonical snapshot bodies
        blobs/<id>.exec.z      zlib-compressed coverage blobs
        staging/<test>.exec    raw blobs of the running build, one per test
        staging/<test>.failed  failure markers of the running build
        predictions.log        decision audit log
        locks/                 cross-process write lock
"""

from __future__ import annotations

import hashlib
import os
import shutil
import tempfile
import zlib
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional
from urllib.parse import quote, unquote

from diskcache import Cache, Lock

from ..exceptions import ConsistencyError, SnapshotFormatError, StoreError
from ..logging_config import get_logger
from ..model.analysis import TestImpactAnalysis
from ..model.lookup import NOT_FOUND, UNAVAILABLE, Found, Lookup
from ..model.units import CompiledUnitId

logger = get_logger(__name__)

LATEST_FILE = "LATEST"
SNAPSHOT_DIR = "snapshots"
BLOB_DIR = "blobs"
STAGING_DIR = "staging"
LOCK_DIR = "locks"
DECISIONS_FILE = "predictions.log"

SNAPSHOT_SUFFIX = ".json"
BLOB_SUFFIX = ".exec.z"
STAGED_BLOB_SUFFIX = ".exec"
FAILED_SUFFIX = ".failed"

_WRITE_LOCK_KEY = "skipwise-store-write"


def content_id(payload: bytes) -> str:
    """Content address of ``payload``: SHA-256 as 64 lowercase hex characters."""
    return hashlib.sha256(payload).hexdigest()


def _test_file_stem(test_id: CompiledUnitId) -> str:
    return quote(test_id.name, safe="._$-")


class FileSystemRepository:
    """Default :class:`~skipwise.storage.repository.Repository` implementation.

    Usage::

        repo = FileSystemRepository(project_dir / ".skipwise")
        with repo.write_lock():
            snapshot_id = repo.save_snapshot(analysis)
    """

    def __init__(self, store_dir: Path, lock_expire_seconds: float = 30.0) -> None:
        self.store_dir = Path(store_dir)
        self.lock_expire_seconds = lock_expire_seconds
        self._lock_cache: Optional[Cache] = None

    # ── layout ────────────────────────────────────────────────────

    @property
    def snapshot_dir(self) -> Path:
        return self.store_dir / SNAPSHOT_DIR

    @property
    def blob_dir(self) -> Path:
        return self.store_dir / BLOB_DIR

    @property
    def staging_dir(self) -> Path:
        return self.store_dir / STAGING_DIR

    @property
    def latest_file(self) -> Path:
        return self.store_dir / LATEST_FILE

    @property
    def decisions_file(self) -> Path:
        return self.store_dir / DECISIONS_FILE

    def _ensure_dir(self, directory: Path) -> None:
        """Create ``directory`` and keep the store out of version control."""
        try:
            directory.mkdir(parents=True, exist_ok=True)
            gitignore = self.store_dir / ".gitignore"
            if not gitignore.exists():
                gitignore.write_text("*\n")
        except OSError as e:
            raise StoreError(directory, e.strerror or str(e))

    def initialize(self) -> None:
        """Create the store directory (and its .gitignore) if missing."""
        self._ensure_dir(self.store_dir)

    # ── locking ───────────────────────────────────────────────────

    @contextmanager
    def write_lock(self) -> Iterator[None]:
        """Serialise durable writes across processes.

        A lock left behind by a crashed build expires after
        ``lock_expire_seconds``.
        """
        if self._lock_cache is None:
            self._ensure_dir(self.store_dir / LOCK_DIR)
            self._lock_cache = Cache(str(self.store_dir / LOCK_DIR))
        lock = Lock(self._lock_cache, _WRITE_LOCK_KEY, expire=self.lock_expire_seconds)
        with lock:
            yield

    def close(self) -> None:
        if self._lock_cache is not None:
            self._lock_cache.close()
            self._lock_cache = None

    # ── snapshots ─────────────────────────────────────────────────

    def save_snapshot(self, analysis: TestImpactAnalysis) -> str:
        """Persist ``analysis`` and point ``LATEST`` at it.

        Callers running concurrently with other builds should hold
        :meth:`write_lock`.

        Raises:
            ConsistencyError: If different content exists under the same id
            StoreError: If the store cannot be written
        """
        body = analysis.to_json()
        snapshot_id = content_id(body)
        self._ensure_dir(self.snapshot_dir)
        self._publish(
            self.snapshot_dir / f"{snapshot_id}{SNAPSHOT_SUFFIX}",
            body,
            snapshot_id,
            same=lambda existing: existing == body,
        )
        self._replace(self.latest_file, snapshot_id.encode("ascii"))
        logger.debug("Saved snapshot %s (%d tests)", snapshot_id, len(analysis.coverage))
        return snapshot_id

    def latest_snapshot_id(self) -> Optional[str]:
        try:
            value = self.latest_file.read_text(encoding="ascii").strip()
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise StoreError(self.latest_file, str(e))
        return value or None

    def load_latest_snapshot(self) -> Lookup[TestImpactAnalysis]:
        """Most recent snapshot, or ``UNAVAILABLE`` when none was ever saved.

        Raises:
            SnapshotFormatError: If the snapshot body cannot be parsed
            ConsistencyError: If the body does not hash to its id
        """
        snapshot_id = self.latest_snapshot_id()
        if snapshot_id is None:
            return UNAVAILABLE
        path = self.snapshot_dir / f"{snapshot_id}{SNAPSHOT_SUFFIX}"
        try:
            body = path.read_bytes()
        except FileNotFoundError:
            logger.warning("LATEST points at missing snapshot %s", snapshot_id)
            return UNAVAILABLE
        except OSError as e:
            raise StoreError(path, e.strerror or str(e))
        if content_id(body) != snapshot_id:
            raise ConsistencyError(path, snapshot_id)
        try:
            return Found(TestImpactAnalysis.from_json(body))
        except SnapshotFormatError as e:
            raise SnapshotFormatError(path, e.reason)

    def _snapshot_files(self) -> list[Path]:
        if not self.snapshot_dir.is_dir():
            return []
        files = [p for p in self.snapshot_dir.iterdir() if p.name.endswith(SNAPSHOT_SUFFIX)]
        return sorted(files, key=lambda p: p.stat().st_mtime, reverse=True)

    # ── coverage blobs ────────────────────────────────────────────

    def save_coverage_blob(self, blob: bytes) -> str:
        """Store ``blob`` compressed under its content id; identical blobs dedupe.

        Raises:
            ConsistencyError: If different content exists under the same id
        """
        blob_id = content_id(blob)
        self._ensure_dir(self.blob_dir)
        self._publish(
            self.blob_dir / f"{blob_id}{BLOB_SUFFIX}",
            zlib.compress(blob, 9),
            blob_id,
            same=lambda existing: _inflate(existing) == blob,
        )
        return blob_id

    def load_coverage_blob(self, blob_id: str) -> Lookup[bytes]:
        """Raises ConsistencyError if the stored bytes do not match ``blob_id``."""
        if not self.blob_dir.is_dir():
            return UNAVAILABLE
        path = self.blob_dir / f"{blob_id}{BLOB_SUFFIX}"
        try:
            compressed = path.read_bytes()
        except FileNotFoundError:
            return NOT_FOUND
        except OSError as e:
            raise StoreError(path, e.strerror or str(e))
        blob = _inflate(compressed)
        if blob is None or content_id(blob) != blob_id:
            raise ConsistencyError(path, blob_id)
        return Found(blob)

    def has_coverage_blob(self, blob_id: str) -> bool:
        return (self.blob_dir / f"{blob_id}{BLOB_SUFFIX}").is_file()

    # ── garbage collection ────────────────────────────────────────

    def collect_garbage(self, keep_snapshots: int) -> None:
        """Prune old snapshots and every blob no retained snapshot references.

        The latest snapshot is always retained. When a retained snapshot
        cannot be parsed, blobs are left alone.
        """
        latest = self.latest_snapshot_id()
        snapshots = self._snapshot_files()
        retained = [p for p in snapshots if p.name == f"{latest}{SNAPSHOT_SUFFIX}"]
        for path in snapshots:
            if path in retained:
                continue
            if len(retained) < keep_snapshots:
                retained.append(path)
            else:
                path.unlink(missing_ok=True)
                logger.debug("Pruned snapshot %s", path.name)

        referenced: set[str] = set()
        for path in retained:
            try:
                referenced |= TestImpactAnalysis.from_json(path.read_bytes()).blob_ids()
            except (OSError, SnapshotFormatError) as e:
                logger.warning("Skipping blob cleanup, cannot read %s: %s", path.name, e)
                return

        if not self.blob_dir.is_dir():
            return
        for path in self.blob_dir.iterdir():
            if path.name.endswith(BLOB_SUFFIX) and path.name[: -len(BLOB_SUFFIX)] not in referenced:
                path.unlink(missing_ok=True)
                logger.debug("Deleted unreferenced blob %s", path.name)

    # ── staging ───────────────────────────────────────────────────

    def stage_temporary_blob(self, test_id: CompiledUnitId, blob: bytes) -> None:
        """Stage the raw blob of one test; each test writes its own file."""
        self._ensure_dir(self.staging_dir)
        self._replace(self.staging_dir / f"{_test_file_stem(test_id)}{STAGED_BLOB_SUFFIX}", blob)

    def collect_staged_blobs_for_current_build(self) -> list[tuple[CompiledUnitId, bytes]]:
        result = []
        for path in self._staged_files(STAGED_BLOB_SUFFIX):
            test_id = CompiledUnitId(unquote(path.name[: -len(STAGED_BLOB_SUFFIX)]))
            try:
                result.append((test_id, path.read_bytes()))
            except OSError as e:
                raise StoreError(path, e.strerror or str(e))
        return result

    def record_test_failure(self, test_id: CompiledUnitId) -> None:
        self._ensure_dir(self.staging_dir)
        self._replace(self.staging_dir / f"{_test_file_stem(test_id)}{FAILED_SUFFIX}", b"")

    def collect_failed_tests(self) -> set[CompiledUnitId]:
        return {
            CompiledUnitId(unquote(path.name[: -len(FAILED_SUFFIX)]))
            for path in self._staged_files(FAILED_SUFFIX)
        }

    def clear_staged(self) -> None:
        if self.staging_dir.is_dir():
            shutil.rmtree(self.staging_dir, ignore_errors=True)

    def _staged_files(self, suffix: str) -> list[Path]:
        if not self.staging_dir.is_dir():
            return []
        return sorted(
            p for p in self.staging_dir.iterdir()
            if p.name.endswith(suffix) and not p.name.startswith(".")
        )

    # ── decision audit log ────────────────────────────────────────

    def append_decision(self, line: str) -> None:
        self._ensure_dir(self.store_dir)
        with self.decisions_file.open("a", encoding="utf-8") as handle:
            handle.write(line.rstrip("\n") + "\n")

    def read_decisions(self) -> list[str]:
        try:
            return self.decisions_file.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []

    def clear_decisions(self) -> None:
        self.decisions_file.unlink(missing_ok=True)

    # ── misc ──────────────────────────────────────────────────────

    def write_artifact(self, name: str, payload: bytes) -> None:
        """Write a derived, non-addressed file (e.g. merged coverage) into the store."""
        self._ensure_dir(self.store_dir)
        self._replace(self.store_dir / name, payload)

    def delete_all(self) -> None:
        """Remove the whole store directory."""
        self.close()
        if self.store_dir.exists():
            shutil.rmtree(self.store_dir)

    # ── low-level writes ──────────────────────────────────────────

    def _write_temp(self, directory: Path, payload: bytes) -> Path:
        fd, name = tempfile.mkstemp(dir=directory, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
        except OSError as e:
            Path(name).unlink(missing_ok=True)
            raise StoreError(directory, e.strerror or str(e))
        return Path(name)

    def _replace(self, target: Path, payload: bytes) -> None:
        """Atomically create or overwrite ``target``."""
        tmp = self._write_temp(target.parent, payload)
        try:
            os.replace(tmp, target)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise StoreError(target, e.strerror or str(e))

    def _publish(
        self, target: Path, payload: bytes, key: str, same: Callable[[bytes], bool]
    ) -> None:
        """Create ``target`` unless it exists; an existing file must hold the same content.

        The hard link either creates the file with complete content or fails,
        so concurrent writers never observe a partial file.
        """
        tmp = self._write_temp(target.parent, payload)
        try:
            os.link(tmp, target)
        except FileExistsError:
            try:
                existing = target.read_bytes()
            except OSError as e:
                raise StoreError(target, e.strerror or str(e))
            if not same(existing):
                raise ConsistencyError(target, key)
            logger.debug("Content %s already stored", key)
        except OSError as e:
            raise StoreError(target, e.strerror or str(e))
        finally:
            tmp.unlink(missing_ok=True)


def _inflate(compressed: bytes) -> Optional[bytes]:
    try:
        return zlib.decompress(compressed)
    except zlib.error:
        return None
