"""
registry.py  •  global port allocation registry

One JSON file (see `paths.port_registry_path()`) maps every port handed out
to the (project, environment, variable) that holds it:

    {
      "version": 1,
      "allocations": {
        "30000": {"project": "/src/app", "environment": "feature-x",
                  "varName": "HTTP_PORT", "allocatedAt": "2024-01-01T00:00:00.000Z"}
      }
    }

Every public function is a self-contained load → mutate → persist sequence.
Nothing is cached between calls; pass `path=` to work on another file.
Mutations hold an exclusive flock on `<registry>.lock` and replace the file
atomically, so a reader never sees a half-written registry.
"""
from __future__ import annotations

import contextlib
import datetime
import fcntl
import json
import logging
import os
import pathlib
import re
import tempfile
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, NamedTuple, Optional, Tuple, Union

from . import paths

SCHEMA_VERSION = 1
DEFAULT_PORT_RANGE: Tuple[int, int] = (30000, 39999)

PathLike = Union[str, os.PathLike]

# canonical ASCII port numbers only, so no two keys can name the same port
_PORT_KEY = re.compile(r"[1-9][0-9]*")

log = logging.getLogger(__name__)


# ─────────────────────────── errors ─────────────────────────────────


class RegistryError(RuntimeError):
    """Base class for port registry failures."""


class StorageError(RegistryError):
    """The registry file exists but could not be read, parsed or written."""

    def __init__(self, message: str, path: pathlib.Path):
        super().__init__(message)
        self.path = path


class ExhaustedRange(RegistryError):
    """Every port in the requested range is already allocated."""

    def __init__(self, port_range: Tuple[int, int], allocated: int):
        lo, hi = port_range
        super().__init__(
            f"No available ports in range {lo}-{hi}. "
            f"{allocated} ports are currently allocated. "
            "Widen the port range or release unused environments."
        )
        self.port_range = port_range
        self.allocated = allocated


# ─────────────────────────── data model ─────────────────────────────


@dataclass
class Allocation:
    project: str
    environment: str
    var_name: str
    allocated_at: str

    def to_json(self) -> Dict[str, str]:
        return {
            "project": self.project,
            "environment": self.environment,
            "varName": self.var_name,
            "allocatedAt": self.allocated_at,
        }

    @classmethod
    def from_json(cls, raw) -> "Allocation":
        if not isinstance(raw, dict):
            raise ValueError(f"allocation must be an object, got {type(raw).__name__}")
        values = []
        for key in ("project", "environment", "varName", "allocatedAt"):
            value = raw.get(key)
            if not isinstance(value, str):
                raise ValueError(f"allocation field {key!r} must be a string")
            values.append(value)
        return cls(*values)


@dataclass
class Registry:
    version: int = SCHEMA_VERSION
    allocations: Dict[int, Allocation] = field(default_factory=dict)

    def to_json(self) -> dict:
        return {
            "version": self.version,
            "allocations": {
                str(port): self.allocations[port].to_json()
                for port in sorted(self.allocations)
            },
        }

    @classmethod
    def from_json(cls, raw) -> "Registry":
        if not isinstance(raw, dict):
            raise ValueError("registry must be a JSON object")
        version = raw.get("version")
        if type(version) is not int or version != SCHEMA_VERSION:
            raise ValueError(f"unsupported registry version {version!r}")
        entries = raw.get("allocations", {})
        if not isinstance(entries, dict):
            raise ValueError("'allocations' must be an object")

        allocations: Dict[int, Allocation] = {}
        for key, value in entries.items():
            if not _PORT_KEY.fullmatch(key):
                raise ValueError(f"invalid port key {key!r}")
            allocations[int(key)] = Allocation.from_json(value)
        return cls(version=version, allocations=allocations)


class ProjectAllocation(NamedTuple):
    environment: str
    var_name: str
    port: int


class RegistrySummary(NamedTuple):
    total_ports: int
    projects: Dict[str, int]        # project path -> ports held


# ─────────────────────────── storage ────────────────────────────────


def _resolve(path: Optional[PathLike]) -> pathlib.Path:
    return pathlib.Path(path) if path is not None else paths.port_registry_path()


def _unique_keys(pairs) -> dict:
    obj = {}
    for key, value in pairs:
        if key in obj:
            raise ValueError(f"duplicate key {key!r}")
        obj[key] = value
    return obj


def _load(path: pathlib.Path) -> Registry:
    """Read the registry; a missing file is an empty registry, nothing else is."""
    try:
        data = path.read_bytes()
    except FileNotFoundError:
        return Registry()
    except OSError as exc:
        log.error("Cannot read port registry %s: %s", path, exc)
        raise StorageError(f"Cannot read port registry {path}: {exc}", path) from exc

    try:
        raw = json.loads(data.decode("utf-8"), object_pairs_hook=_unique_keys)
        return Registry.from_json(raw)
    except ValueError as exc:
        log.error("Port registry %s is corrupt: %s", path, exc)
        raise StorageError(f"Port registry {path} is corrupt: {exc}", path) from exc


def _save(registry: Registry, path: pathlib.Path) -> None:
    """Write to a temp file beside *path*, then rename it into place."""
    tmp = None
    try:
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{path.name}-", suffix=".tmp", dir=path.parent)
        with os.fdopen(fd, "w", encoding="utf-8") as fp:
            json.dump(registry.to_json(), fp, indent=2)
            fp.write("\n")
            fp.flush()
            os.fsync(fp.fileno())
        os.chmod(tmp, 0o600)
        os.replace(tmp, path)
    except OSError as exc:
        if tmp is not None:
            with contextlib.suppress(OSError):
                os.unlink(tmp)
        log.error("Cannot write port registry %s: %s", path, exc)
        raise StorageError(f"Cannot write port registry {path}: {exc}", path) from exc
    log.debug("Wrote %d allocation(s) to %s", len(registry.allocations), path)


@contextlib.contextmanager
def _locked(path: pathlib.Path) -> Iterator[None]:
    """Hold an exclusive advisory lock on `<path>.lock` for the block."""
    lock_path = path.with_name(path.name + ".lock")
    try:
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o600)
    except OSError as exc:
        raise StorageError(f"Cannot open registry lock {lock_path}: {exc}", path) from exc

    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
        except OSError as exc:
            log.error("Cannot lock %s: %s", lock_path, exc)
            raise StorageError(f"Cannot lock registry {lock_path}: {exc}", path) from exc
        log.debug("Locked %s", lock_path)
        try:
            yield
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


def _timestamp() -> str:
    now = datetime.datetime.now(datetime.timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _check_range(port_range: Tuple[int, int]) -> Tuple[int, int]:
    lo, hi = port_range
    if lo > hi:
        raise ValueError(f"Invalid port range {lo}-{hi}: minimum exceeds maximum")
    return lo, hi


# ─────────────────────────── public API ────────────────────────────


def read_registry(path: Optional[PathLike] = None) -> Registry:
    return _load(_resolve(path))


def allocate_ports(
    project: str,
    environment: str,
    var_names: Iterable[str],
    port_range: Tuple[int, int] = DEFAULT_PORT_RANGE,
    path: Optional[PathLike] = None,
) -> Dict[str, int]:
    """
    Give each of *var_names* the lowest free port in *port_range* (inclusive).

    Ports are handed out in input order, so the first variable always gets
    the lowest free port.  All allocations of one call share a timestamp and
    are persisted in a single write.  If any variable cannot be served,
    ExhaustedRange is raised and the registry is left exactly as it was.
    """
    lo, hi = _check_range(port_range)
    var_names = list(var_names)
    if not var_names:
        return {}

    path = _resolve(path)
    with _locked(path):
        registry = _load(path)
        taken = set(registry.allocations)
        held_in_range = sum(1 for port in taken if lo <= port <= hi)
        timestamp = _timestamp()

        fresh: Dict[int, Allocation] = {}
        ports: Dict[str, int] = {}
        candidate = lo
        for var_name in var_names:
            # everything below `candidate` is taken, so keep scanning upward
            while candidate <= hi and candidate in taken:
                candidate += 1
            if candidate > hi:
                raise ExhaustedRange((lo, hi), held_in_range)

            taken.add(candidate)
            fresh[candidate] = Allocation(project, environment, var_name, timestamp)
            ports[var_name] = candidate

        registry.allocations.update(fresh)
        _save(registry, path)

    log.info(
        "Allocated %s for %s in %s",
        ", ".join(f"{k}={v}" for k, v in ports.items()), environment, project,
    )
    return ports


def release_ports(project: str, environment: str, path: Optional[PathLike] = None) -> int:
    """
    Drop every allocation held by (*project*, *environment*).

    Returns how many were removed.  Nothing is written when the pair held no
    ports, and an unknown pair is not an error.
    """
    path = _resolve(path)
    with _locked(path):
        registry = _load(path)
        doomed = [
            port
            for port, alloc in registry.allocations.items()
            if alloc.project == project and alloc.environment == environment
        ]
        if not doomed:
            log.debug("No ports held by %s in %s", environment, project)
            return 0

        for port in doomed:
            del registry.allocations[port]
        _save(registry, path)

    log.info("Released %d port(s) for %s in %s", len(doomed), environment, project)
    return len(doomed)


def ports_for_environment(
    project: str, environment: str, path: Optional[PathLike] = None
) -> Dict[str, int]:
    registry = read_registry(path)
    return {
        alloc.var_name: port
        for port, alloc in sorted(registry.allocations.items())
        if alloc.project == project and alloc.environment == environment
    }


def allocations_for_project(
    project: str, path: Optional[PathLike] = None
) -> List[ProjectAllocation]:
    """Every live allocation of *project*, across environments, by port."""
    registry = read_registry(path)
    return [
        ProjectAllocation(alloc.environment, alloc.var_name, port)
        for port, alloc in sorted(registry.allocations.items())
        if alloc.project == project
    ]


def registry_summary(path: Optional[PathLike] = None) -> RegistrySummary:
    registry = read_registry(path)
    projects: Dict[str, int] = {}
    for alloc in registry.allocations.values():
        projects[alloc.project] = projects.get(alloc.project, 0) + 1
    return RegistrySummary(len(registry.allocations), projects)
