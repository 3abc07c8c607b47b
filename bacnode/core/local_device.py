"""Lifecycle, object table and snapshot of the single local device."""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections.abc import Iterable, Mapping
from typing import Any

from bacnode.core.errors import BindError, ConfigError, NotFoundError, NotInitializedError
from bacnode.core.model import (
    IDENTITY_PROPERTIES,
    MAX_INSTANCE,
    ConfigBackup,
    LocalDeviceConfig,
    ObjectIdentifier,
    ObjectRecord,
)
from bacnode.core.network import get_broadcast_address, get_ip
from bacnode.transports.base import DeviceTransport, TransportFactory

LOGGER = logging.getLogger(__name__)

_CONFIG_FIELDS = frozenset(f.name for f in dataclasses.fields(LocalDeviceConfig))


class LocalDeviceManager:
    """Owns the current local device handle.

    The handle is replaced, never mutated in place, by `create` and `reset`.
    Callers must go through `device` on every use instead of keeping a
    reference across a reset.
    """

    def __init__(self, transport_factory: TransportFactory) -> None:
        self._transport_factory = transport_factory
        self._lock = threading.RLock()
        self._device: DeviceTransport | None = None
        self._config: LocalDeviceConfig | None = None
        self._terminated = False

    @property
    def device(self) -> DeviceTransport:
        device = self._device
        if device is None:
            raise NotInitializedError("No local device. Create one first.")
        return device

    @property
    def config(self) -> LocalDeviceConfig | None:
        return self._config

    @property
    def is_initialized(self) -> bool:
        device = self._device
        return device is not None and device.is_initialized

    def create(self, config: LocalDeviceConfig | None = None) -> DeviceTransport:
        config = _resolve_config(config or LocalDeviceConfig())
        device = self._transport_factory(
            config.device_id,
            config.broadcast_address,
            config.local_address,
        )
        device.port = config.port
        device.timeout = config.timeout
        device.retries = config.retries
        device.seg_timeout = config.seg_timeout
        device.seg_window = config.seg_window

        with self._lock:
            previous = self._device
            if previous is not None and previous.is_initialized:
                LOGGER.warning(
                    "Replacing local device that is still bound to port %s", previous.port
                )
            self._device = device
            self._config = config
            self._terminated = False
        LOGGER.debug("Created local device %s on port %s", config.device_id, config.port)
        return device

    def initialize(self) -> None:
        device = self.device
        if self._terminated:
            raise NotInitializedError("Local device was terminated; create a new one")
        if device.is_initialized:
            raise BindError(f"Local device is already bound to port {device.port}")
        try:
            device.initialize()
        except OSError as exc:
            raise BindError(f"Could not bind local device to port {device.port}: {exc}") from exc
        LOGGER.info("Local device %s bound to port %s", self._config.device_id, device.port)

    def terminate(self) -> None:
        device = self._device
        if device is None or not device.is_initialized:
            return
        self._terminated = True
        try:
            device.terminate()
        except OSError as exc:
            LOGGER.warning("Error while releasing port %s: %s", device.port, exc)
            return
        LOGGER.info("Local device released port %s", device.port)

    def clear(self) -> None:
        """Terminate and forget the local device and its configuration."""
        with self._lock:
            self.terminate()
            self._device = None
            self._config = None
            self._terminated = False

    def local_objects(self) -> list[ObjectRecord]:
        return [
            _record(object_identifier, properties)
            for object_identifier, properties in self.device.get_local_objects()
        ]

    def get_object(self, object_identifier: ObjectIdentifier) -> ObjectRecord:
        object_identifier = normalize_identifier(object_identifier)
        properties = self.device.get_object(object_identifier)
        if properties is None:
            raise NotFoundError(f"No local object {_format_identifier(object_identifier)}")
        return _record(object_identifier, properties)

    def add_or_update_object(self, record: ObjectRecord) -> ObjectRecord:
        """Create the object if needed, then set every non-identity property."""
        device = self.device
        object_identifier = normalize_identifier(record.object_identifier)
        if device.get_object(object_identifier) is None:
            device.add_object(object_identifier)
        for property_id, value in record.properties.items():
            if property_id in IDENTITY_PROPERTIES:
                continue
            device.set_property(object_identifier, property_id, value)
        return self.get_object(object_identifier)

    def remove_object(self, object_identifier: ObjectIdentifier) -> None:
        object_identifier = normalize_identifier(object_identifier)
        device = self.device
        if device.get_object(object_identifier) is None:
            raise NotFoundError(f"No local object {_format_identifier(object_identifier)}")
        device.remove_object(object_identifier)

    def remove_all_objects(self) -> None:
        for record in self.local_objects():
            self.remove_object(record.object_identifier)

    def backup(self) -> ConfigBackup:
        config = self._config or LocalDeviceConfig()
        device = self._device
        if device is None:
            return ConfigBackup(config=config)
        config = dataclasses.replace(
            config,
            port=device.port,
            retries=device.retries,
            seg_timeout=device.seg_timeout,
            seg_window=device.seg_window,
            timeout=device.timeout,
        )
        return ConfigBackup(config=config, objects=tuple(self.local_objects()))

    def reset(
        self,
        overrides: Mapping[str, Any] | None = None,
        *,
        objects: Iterable[ObjectRecord] | None = None,
    ) -> ConfigBackup:
        """Replace the local device with a new one built from the current snapshot.

        `overrides` is merged over the current configuration; it is the only
        way to change the device id or port. The previous objects are
        replayed on the new device unless `objects` is given.
        """
        snapshot = self.backup()
        config = merge_config(snapshot.config, overrides or {})
        replay = tuple(snapshot.objects if objects is None else objects)

        self.terminate()
        # create() reapplies the snapshot's tunables to the new handle.
        self.create(config)
        self.initialize()
        for record in replay:
            self.add_or_update_object(record)
        LOGGER.info("Local device reset as %s with %d object(s)", config.device_id, len(replay))
        return self.backup()


def merge_config(config: LocalDeviceConfig, overrides: Mapping[str, Any]) -> LocalDeviceConfig:
    normalized = {key.replace("-", "_"): value for key, value in overrides.items()}
    unknown = sorted(set(normalized) - _CONFIG_FIELDS)
    if unknown:
        raise ConfigError(f"Unknown configuration key(s): {', '.join(unknown)}")
    return dataclasses.replace(config, **normalized)


def normalize_identifier(object_identifier: Iterable[Any]) -> ObjectIdentifier:
    try:
        object_type, instance = object_identifier
        instance = int(instance)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid object identifier {object_identifier!r}") from exc
    if not 0 <= instance <= MAX_INSTANCE:
        raise ConfigError(f"Object instance {instance} outside 0..{MAX_INSTANCE}")
    return str(object_type), instance


def _resolve_config(config: LocalDeviceConfig) -> LocalDeviceConfig:
    if not 0 <= config.device_id <= MAX_INSTANCE:
        raise ConfigError(f"Device id {config.device_id} outside 0..{MAX_INSTANCE}")
    for name in ("port", "destination_port"):
        value = getattr(config, name)
        if not 1 <= value <= 65535:
            raise ConfigError(f"{name} {value} outside 1..65535")
    if config.broadcast_address is None:
        ip = config.local_address or get_ip()
        config = dataclasses.replace(config, broadcast_address=get_broadcast_address(ip))
    return config


def _record(object_identifier: ObjectIdentifier, properties: Mapping[str, Any]) -> ObjectRecord:
    return ObjectRecord(
        object_identifier=object_identifier,
        properties={k: v for k, v in properties.items() if k not in IDENTITY_PROPERTIES},
    )


def _format_identifier(object_identifier: ObjectIdentifier) -> str:
    return f"{object_identifier[0]}:{object_identifier[1]}"
