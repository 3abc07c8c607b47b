"""Stable public API for building tooling on top of bacnode.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from concurrent.futures import Future
from pathlib import Path
from typing import Any

from bacnode.core.discovery import DEFAULT_ATTEMPTS, DEFAULT_SETTLE_S
from bacnode.core.errors import (
    BackupValidationError,
    BacnodeError,
    BindError,
    ConfigError,
    NoBackupError,
    NotFoundError,
    NotInitializedError,
    TransportError,
)
from bacnode.core.model import (
    Abort,
    ConfigBackup,
    Error,
    LocalDeviceConfig,
    ObjectIdentifier,
    ObjectRecord,
    Outcome,
    Reject,
    RemoteDevice,
    Success,
    Timeout,
)
from bacnode.core.service import NodeService
from bacnode.transports.base import DeviceTransport, TransportFactory

__all__ = [
    "BacnodeError",
    "BackupValidationError",
    "BindError",
    "ConfigError",
    "NoBackupError",
    "NotFoundError",
    "NotInitializedError",
    "TransportError",
    "Abort",
    "ConfigBackup",
    "Error",
    "LocalDeviceConfig",
    "ObjectIdentifier",
    "ObjectRecord",
    "Outcome",
    "Reject",
    "RemoteDevice",
    "Success",
    "Timeout",
    "DeviceTransport",
    "TransportFactory",
    "Client",
]


class Client:
    """Public client for one BACnet node.

    A `Client` owns a local device (created, restored from backup or reset),
    discovers remote devices, and runs blocking remote operations whose
    results are `Outcome` values: `Success`, `Abort`, `Reject`, `Error` or
    `Timeout`. Remote failures are never raised.
    """

    def __init__(
        self,
        *,
        transport_factory: TransportFactory | None = None,
        backup_path: Path | None = None,
        settle_s: float = DEFAULT_SETTLE_S,
    ) -> None:
        self._service = NodeService(
            transport_factory=transport_factory,
            backup_path=backup_path,
            settle_s=settle_s,
        )

    @property
    def last_response(self) -> Any:
        return self._service.bridge.last_response

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # Local device

    def create(self, config: LocalDeviceConfig | None = None) -> None:
        self._service.local.create(config)

    def initialize(self) -> None:
        self._service.local.initialize()

    def terminate(self) -> None:
        self._service.local.terminate()

    def close(self) -> None:
        self._service.close()

    def reset(self, overrides: dict[str, Any] | None = None) -> ConfigBackup:
        return self._service.local.reset(overrides)

    def backup(self) -> ConfigBackup:
        return self._service.local.backup()

    def local_objects(self) -> list[ObjectRecord]:
        return self._service.local.local_objects()

    def add_or_update_object(self, record: ObjectRecord) -> ObjectRecord:
        return self._service.local.add_or_update_object(record)

    def remove_object(self, object_identifier: ObjectIdentifier) -> None:
        self._service.local.remove_object(object_identifier)

    def remove_all_objects(self) -> None:
        self._service.local.remove_all_objects()

    # Backup

    def save(self) -> ConfigBackup:
        return self._service.save()

    def load(self) -> ConfigBackup:
        return self._service.load()

    def boot(self, attempts: int = DEFAULT_ATTEMPTS) -> Future[set[int]]:
        return self._service.boot(attempts)

    # Discovery

    def send_who_is(self, min_range: int | None = None, max_range: int | None = None) -> None:
        self._service.discovery.send_who_is(min_range, max_range)

    def send_who_has(self, object_identifier_or_name: ObjectIdentifier | str) -> None:
        self._service.discovery.send_who_has(object_identifier_or_name)

    def find_devices(self, min_range: int | None = None, max_range: int | None = None) -> set[int]:
        return self._service.discovery.find_devices_and_extended_info(min_range, max_range)

    def remote_devices(self) -> list[int]:
        return self._service.discovery.remote_devices()

    def remote_devices_and_names(self) -> list[tuple[int, str | None]]:
        return self._service.discovery.remote_devices_and_names()

    # Remote objects

    def read_properties(self, device_id: int, object_identifier: ObjectIdentifier, *property_ids: str) -> Outcome:
        return self._service.remote.read_properties(device_id, object_identifier, *property_ids)

    def list_objects(self, device_id: int) -> Outcome:
        return self._service.remote.list_objects(device_id)

    def read_all_objects(self, device_id: int) -> Outcome:
        return self._service.remote.read_all_objects_full_properties(device_id)

    def write_properties(self, device_id: int, record: ObjectRecord) -> dict[str, Outcome]:
        return self._service.remote.write_properties(device_id, record)

    def create_remote_object(self, device_id: int, record: ObjectRecord) -> Outcome:
        return self._service.remote.create_remote_object(device_id, record)

    def delete_remote_object(self, device_id: int, object_identifier: ObjectIdentifier) -> Outcome:
        return self._service.remote.delete_remote_object(device_id, object_identifier)

    def subscribe_cov(self, device_id: int, object_identifier: ObjectIdentifier, **options: Any) -> Outcome:
        return self._service.remote.subscribe_cov(device_id, object_identifier, **options)
