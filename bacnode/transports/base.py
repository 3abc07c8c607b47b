"""Transport interfaces."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from bacnode.core.model import ObjectIdentifier, RemoteDevice


@dataclass(frozen=True)
class AbortPDU:
    reason: str


@dataclass(frozen=True)
class RejectPDU:
    reason: str


@dataclass(frozen=True)
class ErrorPDU:
    error_class: str
    error_code: str


FailurePDU = AbortPDU | RejectPDU | ErrorPDU


class CompletionHandler(Protocol):
    def success(self, ack: Any) -> None:
        """Called with the decoded acknowledgement (None when the service has no result)."""

    def fail(self, pdu: FailurePDU) -> None:
        """Called with an Abort, Reject or Error PDU."""

    def ex(self, exc: BaseException) -> None:
        """Called when no answer could be obtained (unreachable, no response)."""


class DeviceTransport(Protocol):
    port: int
    timeout: int
    retries: int
    seg_timeout: int
    seg_window: int

    @property
    def is_initialized(self) -> bool: ...

    def initialize(self) -> None:
        """Bind the configured port. Raises OSError when already bound."""

    def terminate(self) -> None: ...

    def send_broadcast(self, port: int, request: Any) -> None: ...

    def send_global_broadcast(self, request: Any) -> None: ...

    def send(self, remote: RemoteDevice, request: Any, handler: CompletionHandler) -> None: ...

    def get_remote_devices(self) -> list[RemoteDevice]: ...

    def get_remote_device(self, device_id: int) -> RemoteDevice | None: ...

    def get_extended_device_information(self, remote: RemoteDevice) -> None: ...

    def add_object(self, object_identifier: ObjectIdentifier) -> None: ...

    def get_object(self, object_identifier: ObjectIdentifier) -> dict[str, Any] | None: ...

    def set_property(self, object_identifier: ObjectIdentifier, property_id: str, value: Any) -> None: ...

    def remove_object(self, object_identifier: ObjectIdentifier) -> None: ...

    def get_local_objects(self) -> list[tuple[ObjectIdentifier, dict[str, Any]]]: ...


class TransportFactory(Protocol):
    def __call__(
        self,
        device_id: int,
        broadcast_address: str,
        local_address: str | None,
    ) -> DeviceTransport: ...
