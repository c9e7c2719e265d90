"""Account persistence driven by ``config/storage.toml``.

Accounts are stored one TOML document per key under the storage root.  The
collection layout and schema version come from ``config/storage.toml``; when
the version on disk (tracked in ``schema_version.toml``) is older, the scripts
in ``migrations/<collection>/`` are run in order before anything is read or
written.

:class:`MemoryStore` implements the same persistence port without touching the
filesystem and is what tests and the local console use by default.
"""

from __future__ import annotations

import importlib.util
import logging
import math
import os
import re
import tempfile
from copy import deepcopy
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, MutableMapping, Optional, Protocol
from urllib.parse import quote, unquote

import tomllib

log = logging.getLogger(__name__)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "storage.toml"
DEFAULT_MIGRATIONS_PATH = PROJECT_ROOT / "migrations"
ACCOUNTS = "accounts"


class PersistencePort(Protocol):
    def save(self, account_id: str, data: Mapping[str, Any]) -> None:
        ...

    def load(self, account_id: str) -> Optional[Dict[str, Any]]:
        ...

    def load_all(self) -> Dict[str, Dict[str, Any]]:
        ...

    def delete(self, account_id: str) -> bool:
        ...


def _is_site_packages(path: Path) -> bool:
    parts = {part.lower() for part in path.parts}
    return "site-packages" in parts or "dist-packages" in parts


def resolve_storage_root(package_root: Path = PROJECT_ROOT) -> Path:
    """Pick the directory that holds mutable data.

    ``AVRA_DATA_ROOT`` wins when set.  An installed (site-packages) or
    read-only checkout falls back to the current working directory.
    """

    override = os.getenv("AVRA_DATA_ROOT")
    if override:
        return Path(override).expanduser().resolve()
    if _is_site_packages(package_root) or not os.access(package_root, os.W_OK):
        return Path.cwd().resolve()
    return package_root


# ---------------------------------------------------------------------------
# TOML serialisation
# ---------------------------------------------------------------------------

_BARE_KEY = re.compile(r"^[A-Za-z0-9_-]+$")


def _normalize_for_toml(value: Any) -> Any:
    if isinstance(value, MappingProxyType):
        value = dict(value)
    if isinstance(value, Mapping):
        return {
            str(key): _normalize_for_toml(item)
            for key, item in value.items()
            if item is not None
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_normalize_for_toml(item) for item in value if item is not None]
        if isinstance(value, (set, frozenset)):
            items.sort(key=repr)
        return items
    if isinstance(value, Enum):
        return _normalize_for_toml(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, float):
        return value if math.isfinite(value) else 0.0
    if isinstance(value, (str, int, bool)):
        return value
    if isinstance(value, bytes):
        return value.decode("utf8", "replace")
    return str(value)


_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\f": "\\f",
    "\r": "\\r",
}


def _quote_string(value: str) -> str:
    out: list[str] = []
    for char in value:
        if char in _ESCAPES:
            out.append(_ESCAPES[char])
        elif ord(char) < 0x20 or ord(char) == 0x7F:
            out.append(f"\\u{ord(char):04x}")
        else:
            out.append(char)
    return '"' + "".join(out) + '"'


def _format_key(key: str) -> str:
    return key if _BARE_KEY.match(key) else _quote_string(key)


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, str):
        return _quote_string(value)
    if isinstance(value, list):
        return "[" + ", ".join(_format_value(item) for item in value) + "]"
    if isinstance(value, Mapping):
        inner = ", ".join(
            f"{_format_key(key)} = {_format_value(item)}" for key, item in value.items()
        )
        return "{ " + inner + " }" if inner else "{}"
    return _quote_string(str(value))


def _is_table_array(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(
        isinstance(item, Mapping) for item in value
    )


def _serialize_table(data: Mapping[str, Any], path: tuple[str, ...], output: list[str]) -> None:
    scalars = sorted(
        (key, value)
        for key, value in data.items()
        if not isinstance(value, Mapping) and not _is_table_array(value)
    )
    tables = sorted((key, value) for key, value in data.items() if isinstance(value, Mapping))
    arrays = sorted((key, value) for key, value in data.items() if _is_table_array(value))

    for key, value in scalars:
        output.append(f"{_format_key(key)} = {_format_value(value)}")

    for key, value in tables:
        header = ".".join(_format_key(part) for part in (*path, key))
        if output and output[-1] != "":
            output.append("")
        output.append(f"[{header}]")
        _serialize_table(value, (*path, key), output)

    for key, items in arrays:
        header = ".".join(_format_key(part) for part in (*path, key))
        for item in items:
            if output and output[-1] != "":
                output.append("")
            output.append(f"[[{header}]]")
            _serialize_table(item, (*path, key), output)


def toml_dumps(data: Mapping[str, Any]) -> str:
    normalized = _normalize_for_toml(data)
    if not isinstance(normalized, Mapping):
        raise TypeError("Top level TOML document must be a mapping")
    output: list[str] = []
    _serialize_table(normalized, (), output)
    return "\n".join(output) + "\n"


def _read_toml(path: Path) -> Optional[Dict[str, Any]]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError:
        return None
    except (tomllib.TOMLDecodeError, OSError):
        log.warning("Unreadable TOML document at %s", path, exc_info=True)
        return None


def _write_toml(path: Path, payload: Mapping[str, Any]) -> None:
    """Write ``payload`` atomically: a temp file in the same directory is
    fsynced and then swapped into place."""

    path.parent.mkdir(parents=True, exist_ok=True)
    data = toml_dumps(payload)
    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf8", dir=path.parent, delete=False, suffix=".tmp"
        ) as handle:
            temp_path = Path(handle.name)
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)
        temp_path = None
    finally:
        if temp_path is not None:
            try:
                temp_path.unlink()
            except FileNotFoundError:
                pass


# ---------------------------------------------------------------------------
# Storage configuration
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class CollectionConfig:
    name: str
    path: str
    version: int
    version_scope: str | None = None

    def record_path(self, base: Path, key: str) -> Path:
        return base / self.path.format(key=quote(str(key), safe=""))

    def record_directory(self, base: Path) -> Path:
        return self.record_path(base, "__placeholder__").parent

    def scope_path(self, base: Path) -> Path:
        if self.version_scope:
            return base / self.version_scope
        return self.record_directory(base)


def load_storage_config(path: Path = DEFAULT_CONFIG_PATH) -> dict[str, CollectionConfig]:
    try:
        with path.open("rb") as handle:
            payload = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise RuntimeError(f"Missing storage configuration at {path}") from exc

    raw = payload.get("collections")
    if not isinstance(raw, Mapping):
        raise RuntimeError("storage configuration must define a [collections] table")

    collections: dict[str, CollectionConfig] = {}
    for name, options in raw.items():
        if not isinstance(options, Mapping):
            continue
        template = str(options.get("path", "")).strip()
        if "{key}" not in template:
            raise RuntimeError(f"Collection {name!r} path must contain a {{key}} placeholder")
        scope = options.get("version_scope")
        collections[str(name)] = CollectionConfig(
            name=str(name),
            path=template,
            version=int(options.get("version", 0)),
            version_scope=str(scope) if scope is not None else None,
        )
    return collections


# ---------------------------------------------------------------------------
# Migrations
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class MigrationModule:
    from_version: int
    to_version: int
    apply: Callable[["MigrationContext"], None]
    description: str


@dataclass(slots=True)
class MigrationContext:
    collection: CollectionConfig
    base: Path

    @property
    def record_directory(self) -> Path:
        return self.collection.record_directory(self.base)

    def iter_records(self):
        directory = self.record_directory
        if not directory.is_dir():
            return
        for path in sorted(directory.glob("*.toml")):
            yield path

    def read(self, path: Path) -> Optional[Dict[str, Any]]:
        return _read_toml(path)

    def write(self, path: Path, payload: Mapping[str, Any]) -> None:
        _write_toml(path, payload)

    def log(self, message: str) -> None:
        log.info("[migration:%s] %s", self.collection.name, message)


class MissingMigrationError(RuntimeError):
    pass


class VersionManager:
    """Brings a collection's on-disk schema up to its configured version."""

    def __init__(self, *, base: Path, migrations_base: Path) -> None:
        self._base = base
        self._migrations_base = migrations_base
        self._versions: dict[str, int] = {}
        self._modules: dict[str, list[MigrationModule]] = {}

    def ensure(self, collection: CollectionConfig) -> None:
        current = self._versions.get(collection.name)
        if current is None:
            current = self.read_version(collection)
        target = collection.version
        if current >= target:
            self._versions[collection.name] = current
            return

        available = self.load_migrations(collection.name)
        plan: list[MigrationModule] = []
        version = current
        while version < target:
            step = next((module for module in available if module.from_version == version), None)
            if step is None:
                raise MissingMigrationError(
                    f"Missing migration for {collection.name!r}: {version} -> {target}"
                )
            plan.append(step)
            version = step.to_version
        if version != target:
            raise MissingMigrationError(
                f"Incomplete migration chain for {collection.name!r}: {current} -> {target}"
            )

        context = MigrationContext(collection=collection, base=self._base)
        for step in plan:
            log.info(
                "Migrating %s from v%d to v%d: %s",
                collection.name,
                step.from_version,
                step.to_version,
                step.description,
            )
            step.apply(context)
            self._write_version(collection, step.to_version)
        self._versions[collection.name] = target

    def _version_file(self, collection: CollectionConfig) -> Path:
        return collection.scope_path(self._base) / "schema_version.toml"

    def read_version(self, collection: CollectionConfig) -> int:
        payload = _read_toml(self._version_file(collection))
        if not isinstance(payload, Mapping):
            return 0
        versions = payload.get("collections")
        if not isinstance(versions, Mapping):
            return 0
        try:
            return int(versions.get(collection.name, 0))
        except (TypeError, ValueError):
            return 0

    def _write_version(self, collection: CollectionConfig, version: int) -> None:
        path = self._version_file(collection)
        payload = _read_toml(path)
        if not isinstance(payload, MutableMapping):
            payload = {}
        versions = payload.get("collections")
        if not isinstance(versions, MutableMapping):
            versions = {}
        versions[collection.name] = int(version)
        payload["collections"] = versions
        _write_toml(path, payload)

    def load_migrations(self, name: str) -> list[MigrationModule]:
        cached = self._modules.get(name)
        if cached is not None:
            return cached
        modules: list[MigrationModule] = []
        directory = self._migrations_base / name
        if directory.is_dir():
            for path in sorted(directory.glob("*.py")):
                if path.name.startswith("__"):
                    continue
                module = self._import(name, path)
                from_version = getattr(module, "FROM_VERSION", None)
                to_version = getattr(module, "TO_VERSION", None)
                apply = getattr(module, "apply", None)
                if not isinstance(from_version, int) or not isinstance(to_version, int):
                    log.warning("Skipping migration %s: missing version markers", path.name)
                    continue
                if not callable(apply):
                    log.warning("Skipping migration %s: no apply() function", path.name)
                    continue
                modules.append(
                    MigrationModule(
                        from_version=from_version,
                        to_version=to_version,
                        apply=apply,
                        description=str(getattr(module, "DESCRIPTION", path.stem)),
                    )
                )
        modules.sort(key=lambda module: module.from_version)
        self._modules[name] = modules
        return modules

    @staticmethod
    def _import(collection: str, path: Path):
        spec = importlib.util.spec_from_file_location(
            f"migrations.{collection}.{path.stem}", path
        )
        if spec is None or spec.loader is None:
            raise MissingMigrationError(f"Cannot load migration script {path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class DataStore:
    """TOML backed account store.  One file per account id."""

    def __init__(
        self,
        root: Path | None = None,
        *,
        config_path: Path = DEFAULT_CONFIG_PATH,
        migrations_path: Path = DEFAULT_MIGRATIONS_PATH,
        collection: str = ACCOUNTS,
    ) -> None:
        self.root = Path(root) if root is not None else resolve_storage_root()
        collections = load_storage_config(config_path)
        try:
            self.collection = collections[collection]
        except KeyError as exc:
            raise KeyError(f"Unknown collection: {collection}") from exc
        self._versions = VersionManager(base=self.root, migrations_base=migrations_path)

    def _ready(self) -> None:
        self._versions.ensure(self.collection)

    def path_for(self, account_id: str) -> Path:
        return self.collection.record_path(self.root, account_id)

    def save(self, account_id: str, data: Mapping[str, Any]) -> None:
        self._ready()
        _write_toml(self.path_for(account_id), deepcopy(dict(data)))

    def load(self, account_id: str) -> Optional[Dict[str, Any]]:
        self._ready()
        return _read_toml(self.path_for(account_id))

    def load_all(self) -> Dict[str, Dict[str, Any]]:
        self._ready()
        directory = self.collection.record_directory(self.root)
        if not directory.is_dir():
            return {}
        records: Dict[str, Dict[str, Any]] = {}
        for path in sorted(directory.glob("*.toml")):
            payload = _read_toml(path)
            if payload is not None:
                records[unquote(path.stem)] = payload
        return records

    def delete(self, account_id: str) -> bool:
        self._ready()
        try:
            self.path_for(account_id).unlink()
        except FileNotFoundError:
            return False
        return True


class MemoryStore:
    """In-memory persistence port.  Stores deep copies so callers can't alias."""

    def __init__(self) -> None:
        self.records: Dict[str, Dict[str, Any]] = {}
        self.save_count = 0

    def save(self, account_id: str, data: Mapping[str, Any]) -> None:
        self.records[str(account_id)] = deepcopy(dict(data))
        self.save_count += 1

    def load(self, account_id: str) -> Optional[Dict[str, Any]]:
        record = self.records.get(str(account_id))
        return deepcopy(record) if record is not None else None

    def load_all(self) -> Dict[str, Dict[str, Any]]:
        return deepcopy(self.records)

    def delete(self, account_id: str) -> bool:
        return self.records.pop(str(account_id), None) is not None


__all__ = [
    "CollectionConfig",
    "DataStore",
    "MemoryStore",
    "MigrationContext",
    "MissingMigrationError",
    "PersistencePort",
    "VersionManager",
    "load_storage_config",
    "resolve_storage_root",
    "toml_dumps",
]
