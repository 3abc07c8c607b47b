"""BACnet/IP transport backed by bac-py.

bac-py is asyncio based while the node core blocks. Each `BacpyDevice` runs
its own event loop on a daemon thread between `initialize` and `terminate`;
confirmed requests are scheduled on that loop and their results come back
through the completion handler from the loop thread.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import threading
from collections.abc import Coroutine
from concurrent.futures import CancelledError, Future
from typing import Any

from bac_py.app.application import BACnetApplication, DeviceConfig
from bac_py.app.client import BACnetClient
from bac_py.app.server import DefaultServerHandlers
from bac_py.network.address import GLOBAL_BROADCAST, BACnetAddress, parse_address
from bac_py.objects.base import BACnetObject, create_object
from bac_py.objects.device import DeviceObject
from bac_py.services.errors import BACnetAbortError, BACnetBaseError, BACnetError, BACnetRejectError
from bac_py.services.who_has import IHaveRequest, WhoHasRequest
from bac_py.services.who_is import IAmRequest, WhoIsRequest
from bac_py.types.enums import UnconfirmedServiceChoice
from bac_py.types.parsing import parse_object_identifier
from bac_py.types.primitives import BitString
from bac_py.types.primitives import ObjectIdentifier as BacpyObjectIdentifier

from bacnode.core.errors import ConfigError
from bacnode.core.model import ObjectIdentifier, RemoteDevice
from bacnode.core.requests import (
    CreateObject,
    DeleteObject,
    ReadPropertyMultiple,
    SubscribeCOV,
    WhoHas,
    WhoIs,
    WriteProperty,
)
from bacnode.transports.base import AbortPDU, CompletionHandler, ErrorPDU, RejectPDU, TransportFactory

LOGGER = logging.getLogger(__name__)

VENDOR_NAME = "bacnode"

# Protocol-Services-Supported bit positions (Clause 12.11.18) of the
# confirmed services the node uses.
SERVICE_BITS = {
    5: "subscribe-cov",
    10: "create-object",
    11: "delete-object",
    12: "read-property",
    14: "read-property-multiple",
    15: "write-property",
    16: "write-property-multiple",
}


class BacpyDevice:
    """A local BACnet/IP device served by a `BACnetApplication`."""

    def __init__(self, device_id: int, broadcast_address: str, local_address: str | None) -> None:
        self.device_id = device_id
        self.broadcast_address = broadcast_address
        self.local_address = local_address
        self.port = 47808
        self.timeout = 6000
        self.retries = 3
        self.seg_timeout = 2000
        self.seg_window = 5
        self._state = "uninitialized"
        self._lock = threading.Lock()
        self._remote_devices: dict[int, RemoteDevice] = {}
        self._objects: dict[ObjectIdentifier, dict[str, Any]] = {}
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._app: BACnetApplication | None = None
        self._client: BACnetClient | None = None

    @property
    def is_initialized(self) -> bool:
        return self._state == "initialized"

    @property
    def state(self) -> str:
        return self._state

    def initialize(self) -> None:
        if self._state != "uninitialized":
            raise RuntimeError(f"Cannot initialize a device that is {self._state}")
        app = BACnetApplication(
            DeviceConfig(
                instance_number=self.device_id,
                name=f"{VENDOR_NAME}-{self.device_id}",
                vendor_name=VENDOR_NAME,
                interface=self.local_address or "0.0.0.0",
                port=self.port,
                apdu_timeout=self.timeout,
                apdu_segment_timeout=self.seg_timeout,
                apdu_retries=self.retries,
            )
        )
        loop = asyncio.new_event_loop()
        thread = threading.Thread(target=loop.run_forever, name=f"bacnet-{self.device_id}", daemon=True)
        thread.start()
        self._loop, self._thread, self._app = loop, thread, app
        try:
            self._run(self._open(app))
        except Exception:
            self._close_loop()
            raise
        self._client = BACnetClient(app)
        self._state = "initialized"
        LOGGER.debug("bac-py application for device %s listening on port %s", self.device_id, self.port)

    def terminate(self) -> None:
        if self._state != "initialized":
            raise RuntimeError("Device is not initialized")
        try:
            self._run(self._app.stop())
        finally:
            self._close_loop()
            self._client = None
            self._state = "terminated"

    def send_broadcast(self, port: int, request: Any) -> None:
        self._broadcast(parse_address(f"{self.broadcast_address}:{port}"), request)

    def send_global_broadcast(self, request: Any) -> None:
        self._broadcast(GLOBAL_BROADCAST, request)

    def send(self, remote: RemoteDevice, request: Any, handler: CompletionHandler) -> None:
        self._require_initialized()
        coro = self._perform(parse_address(remote.address), request)
        if coro is None:
            handler.fail(RejectPDU("unrecognized-service"))
            return
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        future.add_done_callback(lambda done: complete(done, handler))

    def get_remote_devices(self) -> list[RemoteDevice]:
        with self._lock:
            return list(self._remote_devices.values())

    def get_remote_device(self, device_id: int) -> RemoteDevice | None:
        with self._lock:
            return self._remote_devices.get(device_id)

    def get_extended_device_information(self, remote: RemoteDevice) -> None:
        self._require_initialized()
        wanted = {("device", remote.instance_number): ["object-name", "protocol-services-supported"]}
        try:
            result = self._run(self._client.read_multiple(remote.address, wanted))
        except (BACnetBaseError, OSError) as exc:
            LOGGER.warning("No extended information for device %s: %s", remote.instance_number, exc)
            return
        properties = next(iter(result.values()), {})
        remote.name = properties.get("object-name")
        services = properties.get("protocol-services-supported")
        if isinstance(services, BitString):
            remote.services_supported = tuple(
                name for bit, name in SERVICE_BITS.items() if bit < len(services) and services[bit]
            )

    def add_object(self, object_identifier: ObjectIdentifier) -> None:
        if object_identifier[0] == "device":
            raise ConfigError("The device object is managed by the transport")
        if self.get_object(object_identifier) is not None:
            raise ValueError(f"Object {object_identifier} already exists")
        self._store(object_identifier, {})

    def get_object(self, object_identifier: ObjectIdentifier) -> dict[str, Any] | None:
        with self._lock:
            properties = self._objects.get(object_identifier)
            return None if properties is None else dict(properties)

    def set_property(self, object_identifier: ObjectIdentifier, property_id: str, value: Any) -> None:
        self._store(object_identifier, {**self.get_object(object_identifier), property_id: value})

    def remove_object(self, object_identifier: ObjectIdentifier) -> None:
        with self._lock:
            del self._objects[object_identifier]
        if self.is_initialized:
            self._run(self._unpublish(parse_object_identifier(object_identifier)))

    def get_local_objects(self) -> list[tuple[ObjectIdentifier, dict[str, Any]]]:
        with self._lock:
            return [(oid, dict(properties)) for oid, properties in self._objects.items()]

    async def _open(self, app: BACnetApplication) -> None:
        await app.start()
        try:
            self._serve(app)
        except Exception:
            await app.stop()
            raise

    def _serve(self, app: BACnetApplication) -> None:
        device = DeviceObject(
            self.device_id,
            object_name=app.config.name,
            vendor_name=VENDOR_NAME,
            vendor_identifier=app.config.vendor_id,
            model_name=VENDOR_NAME,
            firmware_revision=app.config.firmware_revision,
            application_software_version=app.config.application_software_version,
        )
        app.object_db.add(device)
        with self._lock:
            local = list(self._objects.items())
        for object_identifier, properties in local:
            app.object_db.add(build_object(object_identifier, properties))
        DefaultServerHandlers(app, app.object_db, device).register()
        app.register_temporary_handler(UnconfirmedServiceChoice.I_AM, self._on_i_am)
        app.register_temporary_handler(UnconfirmedServiceChoice.I_HAVE, self._on_i_have)

    def _store(self, object_identifier: ObjectIdentifier, properties: dict[str, Any]) -> None:
        # Built before storing so an unrepresentable object leaves the table unchanged.
        obj = build_object(object_identifier, properties)
        with self._lock:
            self._objects[object_identifier] = properties
        if self.is_initialized:
            self._run(self._replace(obj))

    async def _replace(self, obj: BACnetObject) -> None:
        await self._unpublish(obj.object_identifier)
        self._app.object_db.add(obj)

    async def _unpublish(self, object_identifier: BacpyObjectIdentifier) -> None:
        if self._app.object_db.get(object_identifier) is not None:
            self._app.object_db.remove(object_identifier)

    def _perform(self, address: BACnetAddress, request: Any) -> Coroutine[Any, Any, Any] | None:
        client = self._client
        if isinstance(request, ReadPropertyMultiple):
            return _read(client, address, request)
        if isinstance(request, WriteProperty):
            return client.write(address, request.object_identifier, request.property_id, request.value)
        if isinstance(request, CreateObject):
            return _create(client, address, request)
        if isinstance(request, DeleteObject):
            return client.delete_object(address, parse_object_identifier(request.object_identifier))
        if isinstance(request, SubscribeCOV):
            return client.subscribe_cov(
                address,
                parse_object_identifier(request.object_identifier),
                request.process_identifier,
                request.confirmed,
                request.lifetime_seconds,
            )
        return None

    def _broadcast(self, destination: BACnetAddress, request: Any) -> None:
        self._require_initialized()
        if isinstance(request, WhoIs):
            choice = UnconfirmedServiceChoice.WHO_IS
            data = WhoIsRequest(low_limit=request.low_limit, high_limit=request.high_limit).encode()
        elif isinstance(request, WhoHas):
            choice = UnconfirmedServiceChoice.WHO_HAS
            data = WhoHasRequest(
                object_identifier=(
                    None
                    if request.object_identifier is None
                    else parse_object_identifier(request.object_identifier)
                ),
                object_name=request.object_name,
                low_limit=request.low_limit,
                high_limit=request.high_limit,
            ).encode()
        else:
            raise TypeError(f"Cannot broadcast {type(request).__name__}")
        self._loop.call_soon_threadsafe(self._app.unconfirmed_request, destination, choice, data)

    def _on_i_am(self, data: bytes, source: BACnetAddress) -> None:
        self._learn(IAmRequest.decode(data).object_identifier.instance_number, source)

    def _on_i_have(self, data: bytes, source: BACnetAddress) -> None:
        self._learn(IHaveRequest.decode(data).device_identifier.instance_number, source)

    def _learn(self, device_id: int, source: BACnetAddress) -> None:
        if device_id == self.device_id:
            return
        with self._lock:
            remote = self._remote_devices.setdefault(device_id, RemoteDevice(instance_number=device_id))
            remote.address = str(source)

    def _run(self, coro: Coroutine[Any, Any, Any]) -> Any:
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result()

    def _close_loop(self) -> None:
        loop, thread = self._loop, self._thread
        loop.call_soon_threadsafe(loop.stop)
        thread.join()
        loop.close()
        self._loop = self._thread = self._app = None

    def _require_initialized(self) -> None:
        if not self.is_initialized:
            raise RuntimeError("Device is not initialized")


async def _read(client: BACnetClient, address: BACnetAddress, request: ReadPropertyMultiple) -> dict[str, Any]:
    result = await client.read_multiple(address, {request.object_identifier: list(request.property_ids)})
    properties = next(iter(result.values()), {})
    return {name: to_plain(value) for name, value in properties.items()}


async def _create(client: BACnetClient, address: BACnetAddress, request: CreateObject) -> ObjectIdentifier:
    created = await client.create_object(address, object_identifier=parse_object_identifier(request.object_identifier))
    for property_id, value in request.properties.items():
        await client.write(address, created, property_id, value)
    return to_plain(created)


def complete(future: Future[Any], handler: CompletionHandler) -> None:
    """Hand the result of a scheduled request to its completion handler."""
    if future.cancelled():
        handler.ex(CancelledError("Request cancelled by local device shutdown"))
        return
    exc = future.exception()
    if exc is None:
        handler.success(future.result())
    elif isinstance(exc, BACnetError):
        handler.fail(ErrorPDU(enum_name(exc.error_class), enum_name(exc.error_code)))
    elif isinstance(exc, BACnetRejectError):
        handler.fail(RejectPDU(enum_name(exc.reason)))
    elif isinstance(exc, BACnetAbortError):
        handler.fail(AbortPDU(enum_name(exc.reason)))
    else:
        handler.ex(exc)


def build_object(object_identifier: ObjectIdentifier, properties: dict[str, Any]) -> BACnetObject:
    object_type, instance = object_identifier
    try:
        oid = parse_object_identifier((object_type, instance))
        return create_object(
            oid.object_type,
            oid.instance_number,
            **{name.replace("-", "_"): value for name, value in properties.items()},
        )
    except (BACnetError, KeyError, ValueError) as exc:
        raise ConfigError(f"Cannot serve object {object_type}:{instance} over BACnet/IP: {exc}") from exc


def enum_name(member: enum.Enum) -> str:
    return member.name.lower().replace("_", "-")


def to_plain(value: Any) -> Any:
    """Convert decoded bac-py values to the node's identifier and name conventions."""
    if isinstance(value, BacpyObjectIdentifier):
        return enum_name(value.object_type), value.instance_number
    if isinstance(value, enum.Enum):
        return enum_name(value)
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value


def bacpy_factory() -> TransportFactory:
    """Transport factory creating bac-py BACnet/IP devices."""
    return BacpyDevice
