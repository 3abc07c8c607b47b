"""Core data models shared by the node components, backup store and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

ObjectIdentifier = tuple[str, int]

MAX_INSTANCE = 4194303
# WhoIs upper limit used when only a lower bound is given.
WHO_IS_HIGH_LIMIT = 4194304

DEFAULT_DEVICE_ID = 1338
DEFAULT_PORT = 47808

IDENTITY_PROPERTIES = ("object-identifier", "object-type")


@dataclass(frozen=True)
class LocalDeviceConfig:
    device_id: int = DEFAULT_DEVICE_ID
    broadcast_address: str | None = None
    port: int = DEFAULT_PORT
    destination_port: int = DEFAULT_PORT
    local_address: str | None = None
    timeout: int = 10000
    apdu_timeout: int | None = None
    retries: int = 2
    seg_timeout: int = 5000
    seg_window: int = 5


@dataclass(frozen=True)
class ObjectRecord:
    object_identifier: ObjectIdentifier
    properties: dict[str, Any] = field(default_factory=dict)

    @property
    def object_type(self) -> str:
        return self.object_identifier[0]

    def as_mapping(self) -> dict[str, Any]:
        """Flatten to a property map, identity properties included."""
        mapping: dict[str, Any] = {
            "object-identifier": self.object_identifier,
            "object-type": self.object_type,
        }
        mapping.update(self.properties)
        return mapping


@dataclass(frozen=True)
class ConfigBackup:
    config: LocalDeviceConfig
    objects: tuple[ObjectRecord, ...] = ()


@dataclass
class RemoteDevice:
    """Entry of a transport's remote-device table."""

    instance_number: int
    address: str | None = None
    name: str | None = None
    services_supported: tuple[str, ...] | None = None


@dataclass(frozen=True)
class Success:
    value: Any = True


@dataclass(frozen=True)
class Abort:
    reason: str


@dataclass(frozen=True)
class Reject:
    reason: str


@dataclass(frozen=True)
class Error:
    error_class: str
    error_code: str


@dataclass(frozen=True)
class Timeout:
    cause: BaseException | None = None


Outcome = Success | Abort | Reject | Error | Timeout
