"""Local device backup file and boot sequence."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
from concurrent.futures import Future
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from bacnode.core.discovery import DEFAULT_ATTEMPTS, DiscoveryService
from bacnode.core.errors import BackupValidationError, NoBackupError
from bacnode.core.local_device import LocalDeviceManager
from bacnode.core.model import ConfigBackup, LocalDeviceConfig, ObjectRecord

BACKUP_VERSION = 1
TUPLE_TAG = "!tuple"
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[Any, Any]:
    mapping: dict[Any, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise BackupValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


def _construct_tuple(loader: UniqueKeyLoader, node: yaml.Node) -> tuple[Any, ...]:
    return tuple(loader.construct_sequence(node, deep=True))


UniqueKeyLoader.add_constructor(TUPLE_TAG, _construct_tuple)


class BackupDumper(yaml.SafeDumper):
    """YAML dumper that keeps tuples apart from lists."""


def _represent_tuple(dumper: BackupDumper, data: tuple[Any, ...]) -> yaml.Node:
    return dumper.represent_sequence(TUPLE_TAG, data, flow_style=True)


BackupDumper.add_representer(tuple, _represent_tuple)


def default_backup_path() -> Path:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    return xdg_config / "bacnode/backup.yaml"


def _load_schema_validator() -> Any:
    schema_text = resources.files("bacnode.schemas").joinpath("backup.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def snapshot_to_document(snapshot: ConfigBackup) -> dict[str, Any]:
    config = {
        f.name.replace("_", "-"): getattr(snapshot.config, f.name)
        for f in dataclasses.fields(LocalDeviceConfig)
    }
    objects = [
        {
            "object-identifier": list(record.object_identifier),
            "properties": dict(record.properties),
        }
        for record in snapshot.objects
    ]
    return {"version": BACKUP_VERSION, "config": config, "objects": objects}


def dump_document(snapshot: ConfigBackup) -> str:
    return yaml.dump(snapshot_to_document(snapshot), Dumper=BackupDumper, sort_keys=False)


def document_to_snapshot(doc: Any, source: Path | str) -> ConfigBackup:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise BackupValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    config = LocalDeviceConfig(**{key.replace("-", "_"): value for key, value in doc["config"].items()})
    objects = tuple(
        ObjectRecord(
            object_identifier=(item["object-identifier"][0], item["object-identifier"][1]),
            properties=dict(item["properties"]),
        )
        for item in doc["objects"]
    )
    return ConfigBackup(config=config, objects=objects)


class BackupStore:
    def __init__(self, path: Path | None = None) -> None:
        self.path = path or default_backup_path()

    def exists(self) -> bool:
        return self.path.is_file()

    def write(self, snapshot: ConfigBackup) -> None:
        content = dump_document(snapshot)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(content, encoding="utf-8")
        os.replace(tmp, self.path)

    def read(self) -> ConfigBackup:
        try:
            content = self.path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise NoBackupError(f"No backup saved at {self.path}") from exc

        try:
            doc = yaml.load(content, Loader=UniqueKeyLoader)
        except yaml.YAMLError as exc:
            raise BackupValidationError(f"Invalid YAML in {self.path}: {exc}") from exc
        return document_to_snapshot(doc, self.path)


class BackupRestore:
    def __init__(self, local: LocalDeviceManager, discovery: DiscoveryService, store: BackupStore) -> None:
        self._local = local
        self._discovery = discovery
        self.store = store

    def save(self) -> ConfigBackup:
        snapshot = self._local.backup()
        self.store.write(snapshot)
        LOGGER.info("Saved local device backup to %s", self.store.path)
        return snapshot

    def load(self) -> ConfigBackup:
        snapshot = self.store.read()
        overrides = dataclasses.asdict(snapshot.config)
        return self._local.reset(overrides, objects=snapshot.objects)

    def boot(self, attempts: int = DEFAULT_ATTEMPTS) -> Future[set[int]]:
        """Restore or create the local device, then discover the network in the background."""
        try:
            self.load()
        except NoBackupError:
            LOGGER.info("No backup at %s; starting with default configuration", self.store.path)
            self._local.create()
            self._local.initialize()
        return self._discovery.start_background_bootstrap(attempts)
