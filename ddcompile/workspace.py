"""
Build directory manager - workspaces, pointer aliases and the build lock.

Layout of a build root:

    run/
        .lock               advisory lock held for one whole build
        pointers.json       alias -> workspace key (the source of truth)
        latest -> <key>     symlink mirrors of the aliases
        running -> <key>
        aborted -> <key>
        compiled -> <key>
        compiled-backup -> <key>
        <key>/
            run.log
            status.json
            config-*.json, code-*.json ...

Workspace keys are derived from the allocation time and are strictly
increasing within a build root: a key that already exists, or that would
not sort after the latest one, gets a -NNN counter suffix.

Every pointer update rewrites pointers.json through an atomic rename, so
readers always see either the old or the new bindings.
"""

import fcntl
import logging
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from ddcompile.errors import WorkspaceError, WorkspaceLockedError
from ddcompile.schemas import WorkspaceRecord
from ddcompile.utils import read_json, write_json

logger = logging.getLogger(__name__)

KEY_FORMAT = "%Y%m%d-%H%M%S.%f"
KEY_PATTERN = re.compile(r"^(\d{8}-\d{6}\.\d{6})(?:-(\d+))?$")

LATEST = "latest"
RUNNING = "running"
ABORTED = "aborted"
COMPILED = "compiled"
COMPILED_BACKUP = "compiled-backup"
ALIASES = (LATEST, RUNNING, ABORTED, COMPILED, COMPILED_BACKUP)

POINTERS_FILE = "pointers.json"
LOCK_FILE = ".lock"
RECORD_FILE = "status.json"
LOG_FILE = "run.log"


def _atomic_symlink(target: str, link: Path) -> None:
    """Create or rebind a symlink without a moment where it is missing."""
    tmp = link.with_name(f".{link.name}.tmp")
    if tmp.is_symlink() or tmp.exists():
        tmp.unlink()
    os.symlink(target, tmp)
    os.replace(tmp, link)


class PointerStore:
    """
    Alias -> workspace key bindings of one build root.

    Usage:
        pointers = PointerStore(root)
        pointers.update({"latest": key, "running": key})
        pointers.remove_if("running", key)
        previous = pointers.promote(key)
    """

    def __init__(self, root: Path, links: bool = True):
        """
        Args:
            root: Build root directory
            links: Mirror every alias as a symlink in the root
        """
        self.root = Path(root)
        self.links = links
        self.path = self.root / POINTERS_FILE

    def read(self) -> dict[str, str]:
        """
        Read all current bindings.

        Raises:
            WorkspaceError: If the pointer file exists but cannot be parsed
        """
        if not self.path.exists():
            return {}
        try:
            data = read_json(self.path)
        except ValueError as e:
            raise WorkspaceError(f"Corrupt pointer store {self.path}: {e}")
        if not isinstance(data, dict):
            raise WorkspaceError(f"Corrupt pointer store {self.path}: not a mapping")
        return {k: v for k, v in data.items() if k in ALIASES}

    def get(self, alias: str) -> Optional[str]:
        self._check_alias(alias)
        return self.read().get(alias)

    def update(self, changes: dict[str, Optional[str]]) -> dict[str, str]:
        """
        Apply several rebinds in one atomic write.

        Args:
            changes: alias -> key, or alias -> None to remove the alias

        Returns:
            The bindings after the update
        """
        for alias in changes:
            self._check_alias(alias)

        pointers = self.read()
        for alias, key in changes.items():
            if key is None:
                pointers.pop(alias, None)
            else:
                pointers[alias] = key

        self.root.mkdir(parents=True, exist_ok=True)
        write_json(self.path, pointers)

        if self.links:
            for alias, key in changes.items():
                self._mirror(alias, key)

        logger.debug(
            "Pointers updated",
            extra={"event": "pointers_updated", "metadata": dict(changes)},
        )
        return pointers

    def set(self, alias: str, key: str) -> None:
        self.update({alias: key})

    def remove(self, alias: str) -> None:
        self.update({alias: None})

    def remove_if(self, alias: str, key: str) -> bool:
        """
        Remove an alias only if it is still bound to key.

        Returns:
            True if the alias was removed
        """
        if self.get(alias) != key:
            return False
        self.remove(alias)
        return True

    def promote(self, key: str) -> Optional[str]:
        """
        Bind compiled to key, keeping the previous compiled as backup.

        The previous compiled key is moved to compiled-backup first
        (overwriting an older backup), then compiled is rebound.

        Returns:
            The previously compiled key, if any
        """
        previous = self.get(COMPILED)
        if previous is not None and previous != key:
            self.update({COMPILED_BACKUP: previous})
        self.update({COMPILED: key})
        return previous

    def _mirror(self, alias: str, key: Optional[str]) -> None:
        link = self.root / alias
        if key is None:
            if link.is_symlink():
                link.unlink()
            return
        _atomic_symlink(key, link)

    @staticmethod
    def _check_alias(alias: str) -> None:
        if alias not in ALIASES:
            raise ValueError(f"Unknown alias: {alias}. Known: {list(ALIASES)}")


class BuildLock:
    """
    Advisory lock on a build root, held for one whole build.

    Usage:
        with BuildLock(root / ".lock"):
            ...
    """

    def __init__(self, path: Path, wait: bool = False):
        """
        Args:
            path: Lock file
            wait: Block until the lock is free instead of failing
        """
        self.path = Path(path)
        self.wait = wait
        self._file = None

    @property
    def held(self) -> bool:
        return self._file is not None

    def acquire(self) -> None:
        """
        Take the lock.

        Raises:
            WorkspaceLockedError: If another build holds it and wait is False
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        f = open(self.path, "a+")
        flags = fcntl.LOCK_EX if self.wait else fcntl.LOCK_EX | fcntl.LOCK_NB
        try:
            fcntl.flock(f.fileno(), flags)
        except BlockingIOError:
            f.close()
            raise WorkspaceLockedError(
                f"Another build is running in {self.path.parent} "
                f"(lock held on {self.path})"
            )
        f.seek(0)
        f.truncate()
        f.write(f"{os.getpid()}\n")
        f.flush()
        self._file = f

    def release(self) -> None:
        if self._file is None:
            return
        fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
        self._file.close()
        self._file = None

    def __enter__(self) -> "BuildLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class Workspace:
    """
    One compile attempt's private directory.

    Units write artifacts through artifact_path()/write_artifact(); the
    record lists artifacts in the order the driver persisted them.
    """

    def __init__(self, root: Path, key: str, record: Optional[WorkspaceRecord] = None):
        self.root = Path(root)
        self.key = key
        self.path = self.root / key
        self.record = record or WorkspaceRecord(key=key)

    @property
    def log_path(self) -> Path:
        return self.path / LOG_FILE

    @property
    def record_path(self) -> Path:
        return self.path / RECORD_FILE

    def artifact_path(self, name: str) -> Path:
        return self.path / name

    def add_artifact(self, name: str) -> None:
        """Append an artifact to the record and persist it."""
        if name not in self.record.artifacts:
            self.record.artifacts.append(name)
        self.save_record()

    def write_artifact(self, name: str, data: Any) -> Path:
        """Persist a JSON artifact and list it in the record."""
        path = write_json(self.artifact_path(name), data)
        self.add_artifact(name)
        return path

    def read_artifact(self, name: str) -> Any:
        return read_json(self.artifact_path(name))

    def link(self, name: str, target: str) -> Path:
        """
        Create name as a relative symlink to an existing artifact.

        The link is a reference, the artifact is not copied.
        """
        if not self.artifact_path(target).exists():
            raise WorkspaceError(f"Cannot link {name}: {target} does not exist")
        link = self.artifact_path(name)
        _atomic_symlink(target, link)
        self.add_artifact(name)
        return link

    def save_record(self) -> None:
        write_json(self.record_path, self.record.to_dict())

    @classmethod
    def load(cls, root: Path, key: str) -> "Workspace":
        """
        Load an existing workspace and its record.

        Raises:
            WorkspaceError: If the workspace or its record is missing
        """
        path = Path(root) / key
        record_path = path / RECORD_FILE
        if not record_path.exists():
            raise WorkspaceError(f"Workspace not found: {path}")
        record = WorkspaceRecord.from_dict(read_json(record_path))
        return cls(root, key, record)

    def __repr__(self) -> str:
        return f"Workspace(key={self.key}, status={self.record.status})"


class BuildDirectory:
    """
    The build root of a project.

    Usage:
        build_dir = BuildDirectory(project_dir / "run")
        with build_dir.lock():
            workspace = build_dir.allocate()
            ...
            build_dir.promote(workspace)
    """

    def __init__(self, root: Path, links: bool = True):
        self.root = Path(root)
        self.pointers = PointerStore(self.root, links=links)

    def lock(self, wait: bool = False) -> BuildLock:
        return BuildLock(self.root / LOCK_FILE, wait=wait)

    def allocate(self, now: Optional[datetime] = None) -> Workspace:
        """
        Create a new workspace with a unique, increasing key.

        Args:
            now: Allocation time (defaults to the current local time)

        Returns:
            The new Workspace, its record persisted as running
        """
        self.root.mkdir(parents=True, exist_ok=True)
        base = (now or datetime.now()).strftime(KEY_FORMAT)
        counter = 0
        # keys not produced by allocate() do not take part in ordering
        latest = self.pointers.get(LATEST)
        match = KEY_PATTERN.match(latest) if latest else None
        if match is None:
            latest = None
        elif base <= match.group(1):
            base = match.group(1)
            counter = int(match.group(2) or 0)

        candidate = f"{base}-{counter:03d}" if counter else base
        while True:
            if latest is None or candidate > latest:
                try:
                    (self.root / candidate).mkdir()
                    break
                except FileExistsError:
                    pass
            counter += 1
            candidate = f"{base}-{counter:03d}"

        workspace = Workspace(self.root, candidate)
        workspace.save_record()
        logger.debug(f"Allocated workspace {candidate}")
        return workspace

    def workspace(self, key: str) -> Workspace:
        return Workspace.load(self.root, key)

    def resolve(self, alias: str) -> Optional[Workspace]:
        """Return the workspace an alias points at, if bound."""
        key = self.pointers.get(alias)
        if key is None:
            return None
        return self.workspace(key)

    def promote(self, workspace: Workspace) -> Optional[str]:
        """Make a workspace the compiled one; returns the previous key."""
        previous = self.pointers.promote(workspace.key)
        logger.info(
            f"Promoted workspace {workspace.key}",
            extra={
                "event": "workspace_promoted",
                "metadata": {"compiled": workspace.key, "backup": previous},
            },
        )
        return previous
