"""Higher-level operations on remote objects, composed from bridge round-trips."""

from __future__ import annotations

from typing import Any

from bacnode.core.bridge import RequestBridge
from bacnode.core.local_device import normalize_identifier
from bacnode.core.model import (
    IDENTITY_PROPERTIES,
    ObjectIdentifier,
    ObjectRecord,
    Outcome,
    Success,
)
from bacnode.core.requests import (
    CreateObject,
    DeleteObject,
    ReadPropertyMultiple,
    SubscribeCOV,
    WriteProperty,
)

ALL_PROPERTIES = "all"
DEFAULT_COV_PROCESS_ID = 1

_NOT_WRITABLE = (*IDENTITY_PROPERTIES, "object-list")


class RemoteObjectAccessor:
    def __init__(self, bridge: RequestBridge) -> None:
        self._bridge = bridge

    def read_properties(
        self,
        device_id: int,
        object_identifier: ObjectIdentifier,
        *property_ids: str,
    ) -> Outcome:
        """Read properties in one request; the success value maps property id to value.

        Example: `read_properties(1234, ("analog-input", 0), "all")`
        """
        request = ReadPropertyMultiple(
            object_identifier=normalize_identifier(object_identifier),
            property_ids=tuple(property_ids) or (ALL_PROPERTIES,),
        )
        return self._bridge.send_and_wait(device_id, request)

    def list_objects(self, device_id: int) -> Outcome:
        outcome = self.read_properties(device_id, ("device", device_id), "object-list")
        if not isinstance(outcome, Success):
            return outcome
        object_list = outcome.value.get("object-list", [])
        return Success([normalize_identifier(oid) for oid in object_list])

    def read_all_objects_full_properties(self, device_id: int) -> Outcome:
        """Read every property of every object, one round-trip per object."""
        listed = self.list_objects(device_id)
        if not isinstance(listed, Success):
            return listed
        return Success([self.read_properties(device_id, oid, ALL_PROPERTIES) for oid in listed.value])

    def write_properties(self, device_id: int, record: ObjectRecord) -> dict[str, Outcome]:
        object_identifier = normalize_identifier(record.object_identifier)
        outcomes: dict[str, Outcome] = {}
        for property_id, value in record.properties.items():
            if property_id in _NOT_WRITABLE:
                continue
            request = WriteProperty(object_identifier, property_id, value)
            outcomes[property_id] = self._bridge.send_and_wait(device_id, request)
        return outcomes

    def create_remote_object(self, device_id: int, record: ObjectRecord) -> Outcome:
        request = CreateObject(
            object_identifier=normalize_identifier(record.object_identifier),
            properties=_writable(record.properties),
        )
        return self._bridge.send_and_wait(device_id, request)

    def delete_remote_object(self, device_id: int, object_identifier: ObjectIdentifier) -> Outcome:
        return self._bridge.send_and_wait(device_id, DeleteObject(normalize_identifier(object_identifier)))

    def subscribe_cov(
        self,
        device_id: int,
        object_identifier: ObjectIdentifier,
        *,
        process_identifier: int = DEFAULT_COV_PROCESS_ID,
        confirmed: bool = False,
        lifetime_seconds: int = 60,
    ) -> Outcome:
        request = SubscribeCOV(
            process_identifier=process_identifier,
            object_identifier=normalize_identifier(object_identifier),
            confirmed=confirmed,
            lifetime_seconds=lifetime_seconds,
        )
        return self._bridge.send_and_wait(device_id, request)


def _writable(properties: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in properties.items() if k not in _NOT_WRITABLE}
