"""Trust store for workspaces and workspace-local configuration files.

Prevents a checkout from silently running the tools its configuration asks
for. Decisions are persisted to <data_dir>/trust_db.json, keyed by canonical
path. File grants are bound to a SHA-256 fingerprint of (path, content), so
editing a trusted file revokes its trust.

Every access holds an exclusive advisory lock on <data_dir>/trust_db.lock for
the duration of one load (and, for mutations, one full rewrite), so editor
processes sharing a data directory never lose each other's decisions.

Paths that cannot be canonicalized (they do not exist, or cannot be resolved)
are treated as "not trusted" by queries and ignored by mutations. Callers
cannot tell that outcome apart from an explicit denial.
"""

from __future__ import annotations

import enum
import hashlib
import json
import logging
import os
import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any, TypeVar, Union

from ..paths import ancestors, canonicalize, ensure_parent_dir, restrict_permissions
from ..workspace import find_workspace_in, workspace_languages_file

logger = logging.getLogger(__name__)

TRUST_DB_FILENAME = "trust_db.json"

R = TypeVar("R")


class TrustStoreCorruptError(RuntimeError):
    """The trust database exists but does not hold a valid document."""

    def __init__(self, path: Path, reason: str = "") -> None:
        self.path = path
        message = f"Trust database is corrupted. Try to fix {path} or delete it"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class TrustState(enum.Enum):
    TRUSTED = "trusted"
    UNTRUSTED = "untrusted"
    UNKNOWN = "unknown"

    @property
    def is_trusted(self) -> bool:
        # UNKNOWN counts as untrusted everywhere
        return self is TrustState.TRUSTED


@dataclass(frozen=True)
class WorkspaceTrust:
    completely: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"kind": "workspace", "completely": self.completely}


@dataclass(frozen=True)
class FileTrust:
    hash: str

    def to_dict(self) -> dict[str, Any]:
        return {"kind": "file", "hash": self.hash}


@dataclass(frozen=True)
class Revoked:
    def to_dict(self) -> dict[str, Any]:
        return {"kind": "untrusted"}


TrustRecord = Union[WorkspaceTrust, FileTrust, Revoked]


def record_from_dict(raw: Any) -> TrustRecord:
    """Parse one persisted record. Raises ValueError on anything unexpected."""
    if not isinstance(raw, dict):
        raise ValueError(f"record must be a table, got {type(raw).__name__}")
    kind = raw.get("kind")
    if kind == "workspace":
        completely = raw.get("completely", False)
        if not isinstance(completely, bool):
            raise ValueError("'completely' must be a boolean")
        return WorkspaceTrust(completely=completely)
    if kind == "file":
        digest = raw.get("hash")
        if not isinstance(digest, str) or not digest:
            raise ValueError("file record is missing its hash")
        return FileTrust(hash=digest)
    if kind == "untrusted":
        return Revoked()
    raise ValueError(f"unknown record kind {kind!r}")


def compute_fingerprint(path: Path, contents: bytes) -> str:
    """SHA-256 hex digest over the canonical path bytes followed by the content."""
    hasher = hashlib.sha256()
    hasher.update(os.fsencode(path))
    hasher.update(contents)
    return hasher.hexdigest()


@dataclass
class TrustDb:
    """In-memory form of the trust database, keyed by canonical path string."""

    trust: dict[str, TrustRecord] = field(default_factory=dict)

    def workspace_decision(self, path: Path) -> TrustRecord | None:
        """Nearest workspace grant or revocation at path or above it."""
        for candidate in ancestors(path):
            record = self.trust.get(str(candidate))
            if isinstance(record, (WorkspaceTrust, Revoked)):
                return record
        return None

    def is_workspace_trusted(self, path: Path) -> TrustState:
        record = self.workspace_decision(path)
        if record is None:
            return TrustState.UNKNOWN
        if isinstance(record, WorkspaceTrust):
            return TrustState.TRUSTED
        return TrustState.UNTRUSTED

    def is_file_in_completely_trusted(self, path: Path) -> bool:
        record = self.workspace_decision(path)
        return isinstance(record, WorkspaceTrust) and record.completely

    def is_file_trusted(self, path: Path, fingerprint: str) -> bool:
        record = self.trust.get(str(path))
        if isinstance(record, FileTrust) and record.hash == fingerprint:
            return True
        return self.is_file_in_completely_trusted(path)

    def to_dict(self) -> dict[str, Any]:
        return {"trust": {key: record.to_dict() for key, record in sorted(self.trust.items())}}


def parse_trust_db(text: str | bytes, path: Path) -> TrustDb:
    """Parse the persisted document. Raises TrustStoreCorruptError if invalid."""
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise TrustStoreCorruptError(path, str(exc)) from exc
    if not text.strip():
        return TrustDb()
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise TrustStoreCorruptError(path, str(exc)) from exc
    if not isinstance(raw, dict):
        raise TrustStoreCorruptError(path, "top level must be an object")
    entries = raw.get("trust")
    if entries is None:
        entries = {}
    if not isinstance(entries, dict):
        raise TrustStoreCorruptError(path, "'trust' must be an object")
    db = TrustDb()
    for key, value in entries.items():
        try:
            db.trust[key] = record_from_dict(value)
        except ValueError as exc:
            raise TrustStoreCorruptError(path, f"{key}: {exc}") from exc
    return db


def _acquire_lock(lock_path: Path) -> IO[str]:
    """Open the lock file and block until we hold it exclusively."""
    ensure_parent_dir(lock_path)
    lock_f = open(lock_path, "a+")  # noqa: SIM115
    try:
        if sys.platform == "win32":
            import msvcrt

            lock_f.seek(0)
            while True:
                try:
                    msvcrt.locking(lock_f.fileno(), msvcrt.LK_LOCK, 1)
                    break
                except OSError:
                    # LK_LOCK gives up after ~10s; keep waiting
                    continue
        else:
            import fcntl

            fcntl.flock(lock_f, fcntl.LOCK_EX)
    except BaseException:
        lock_f.close()
        raise
    return lock_f


def _release_lock(lock_f: IO[str]) -> None:
    try:
        if sys.platform == "win32":
            import msvcrt

            lock_f.seek(0)
            msvcrt.locking(lock_f.fileno(), msvcrt.LK_UNLCK, 1)
        else:
            import fcntl

            fcntl.flock(lock_f, fcntl.LOCK_UN)
    finally:
        lock_f.close()


class TrustStore:
    """Persisted trust decisions rooted in one data directory."""

    def __init__(
        self,
        data_dir: Path,
        locator: Callable[[Path], tuple[Path, bool]] = find_workspace_in,
    ) -> None:
        self.data_dir = Path(data_dir)
        self._locator = locator

    @property
    def path(self) -> Path:
        return self.data_dir / TRUST_DB_FILENAME

    @property
    def lock_path(self) -> Path:
        return self.path.with_suffix(".lock")

    def initialize(self) -> None:
        ensure_parent_dir(self.path)

    # -- locked access ---------------------------------------------------

    @contextmanager
    def _locked(self) -> Iterator[None]:
        lock_f = _acquire_lock(self.lock_path)
        try:
            yield
        finally:
            _release_lock(lock_f)

    def _load(self) -> TrustDb:
        """Read and parse the store. Caller must hold the lock."""
        try:
            data = self.path.read_bytes()
        except FileNotFoundError:
            return TrustDb()
        try:
            return parse_trust_db(data, self.path)
        except TrustStoreCorruptError:
            logger.critical("Trust database at %s is corrupted", self.path)
            raise

    def _save(self, db: TrustDb) -> None:
        """Write the whole store back to disk with 0600 perms. Caller must hold the lock."""
        ensure_parent_dir(self.path)
        payload = json.dumps(db.to_dict(), indent=2, ensure_ascii=False)
        self.path.write_text(payload + "\n", encoding="utf-8")
        restrict_permissions(self.path)

    def inspect(self, fn: Callable[[TrustDb], R]) -> R:
        """Run fn against a freshly loaded store while holding the lock."""
        with self._locked():
            return fn(self._load())

    def modify(self, fn: Callable[[TrustDb], R]) -> R:
        """Load, apply fn, and write the full store back, all under one lock."""
        with self._locked():
            db = self._load()
            result = fn(db)
            self._save(db)
            return result

    # -- workspace decisions ---------------------------------------------

    def trust_workspace(self, path: str | os.PathLike[str], completely: bool) -> TrustRecord | None:
        """Grant trust to a workspace. Returns the record it replaced, if any."""
        resolved = canonicalize(path)
        if resolved is None:
            return None
        logger.debug("Trusting workspace %s (completely=%s)", resolved, completely)
        return self.modify(lambda db: _put(db, resolved, WorkspaceTrust(completely=completely)))

    def untrust_workspace(self, path: str | os.PathLike[str]) -> TrustRecord | None:
        """Record an explicit denial for a workspace. Returns the record it replaced."""
        resolved = canonicalize(path)
        if resolved is None:
            return None
        logger.debug("Revoking trust for workspace %s", resolved)
        return self.modify(lambda db: _put(db, resolved, Revoked()))

    def is_workspace_trusted(self, path: str | os.PathLike[str]) -> TrustState:
        """Decision of the nearest ancestor (path included) holding a workspace record."""
        resolved = canonicalize(path)
        if resolved is None:
            return TrustState.UNTRUSTED
        return self.inspect(lambda db: db.is_workspace_trusted(resolved))

    # -- file decisions --------------------------------------------------

    def trust_file(self, path: str | os.PathLike[str], contents: bytes) -> bool:
        """Trust exactly these contents at path. True when no record existed there before."""
        resolved = canonicalize(path)
        if resolved is None:
            return False
        fingerprint = compute_fingerprint(resolved, contents)
        logger.debug("Trusting file %s", resolved)
        return self.modify(lambda db: _put(db, resolved, FileTrust(hash=fingerprint)) is None)

    def untrust_file(self, path: str | os.PathLike[str]) -> bool:
        """Drop the file grant at path. True if there was one."""
        resolved = canonicalize(path)
        if resolved is None:
            return False

        def _remove(db: TrustDb) -> bool:
            key = str(resolved)
            if isinstance(db.trust.get(key), FileTrust):
                del db.trust[key]
                return True
            return False

        return self.modify(_remove)

    def is_file_trusted(self, path: str | os.PathLike[str], contents: bytes) -> bool:
        resolved = canonicalize(path)
        if resolved is None:
            return False
        fingerprint = compute_fingerprint(resolved, contents)
        return self.inspect(lambda db: db.is_file_trusted(resolved, fingerprint))

    def is_local_lang_config_trusted(self, start: str | os.PathLike[str] | None = None) -> bool:
        """Whether the current workspace's languages.yaml may be loaded.

        A workspace without a local configuration file is reported as not
        trusted; there is nothing to load.
        """
        root, _ = self._locator(Path(start) if start is not None else Path.cwd())
        config_file = workspace_languages_file(root)
        try:
            contents = config_file.read_bytes()
        except FileNotFoundError:
            return False
        return self.is_file_trusted(config_file, contents)

    def records(self) -> dict[str, TrustRecord]:
        return self.inspect(lambda db: dict(db.trust))


def _put(db: TrustDb, path: Path, record: TrustRecord) -> TrustRecord | None:
    key = str(path)
    previous = db.trust.get(key)
    db.trust[key] = record
    return previous

