from __future__ import annotations

import socket
from concurrent.futures import CancelledError, Future

import pytest

pytest.importorskip("bac_py")

from bac_py.services.errors import BACnetAbortError, BACnetError, BACnetRejectError, BACnetTimeoutError  # noqa: E402
from bac_py.types.enums import AbortReason, ErrorClass, ErrorCode, ObjectType, RejectReason  # noqa: E402
from bac_py.types.primitives import ObjectIdentifier  # noqa: E402

from bacnode.core.errors import BindError, ConfigError  # noqa: E402
from bacnode.core.local_device import LocalDeviceManager  # noqa: E402
from bacnode.core.model import LocalDeviceConfig  # noqa: E402
from bacnode.core.service import NodeService  # noqa: E402
from bacnode.transports.bacpy import BacpyDevice, bacpy_factory, complete, to_plain  # noqa: E402
from bacnode.transports.base import AbortPDU, ErrorPDU, RejectPDU  # noqa: E402


class RecordingHandler:
    def __init__(self) -> None:
        self.calls: list[tuple[str, object]] = []

    def success(self, ack) -> None:
        self.calls.append(("success", ack))

    def fail(self, pdu) -> None:
        self.calls.append(("fail", pdu))

    def ex(self, exc) -> None:
        self.calls.append(("ex", exc))


def _settled(result=None, exc: BaseException | None = None) -> Future:
    future: Future = Future()
    if exc is None:
        future.set_result(result)
    else:
        future.set_exception(exc)
    return future


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_ack_is_handed_to_success() -> None:
    handler = RecordingHandler()
    complete(_settled({"present-value": 72.5}), handler)
    assert handler.calls == [("success", {"present-value": 72.5})]


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (BACnetError(ErrorClass.OBJECT, ErrorCode.UNKNOWN_OBJECT), ErrorPDU("object", "unknown-object")),
        (BACnetRejectError(RejectReason.UNRECOGNIZED_SERVICE), RejectPDU("unrecognized-service")),
        (
            BACnetAbortError(AbortReason.SEGMENTATION_NOT_SUPPORTED),
            AbortPDU("segmentation-not-supported"),
        ),
    ],
)
def test_protocol_failures_are_handed_to_fail(exc, expected) -> None:
    handler = RecordingHandler()
    complete(_settled(exc=exc), handler)
    assert handler.calls == [("fail", expected)]


def test_timeouts_and_socket_errors_are_handed_to_ex() -> None:
    timeout = BACnetTimeoutError("no answer")
    unreachable = OSError(101, "Network is unreachable")
    handler = RecordingHandler()

    complete(_settled(exc=timeout), handler)
    complete(_settled(exc=unreachable), handler)

    assert handler.calls == [("ex", timeout), ("ex", unreachable)]


def test_cancelled_request_is_handed_to_ex() -> None:
    future: Future = Future()
    future.cancel()
    handler = RecordingHandler()

    complete(future, handler)

    [(kind, exc)] = handler.calls
    assert kind == "ex"
    assert isinstance(exc, CancelledError)


def test_decoded_identifiers_use_node_names() -> None:
    value = [ObjectIdentifier(ObjectType.DEVICE, 12), ObjectIdentifier(ObjectType.ANALOG_VALUE, 1)]
    assert to_plain(value) == [("device", 12), ("analog-value", 1)]
    assert to_plain(ObjectType.BINARY_VALUE) == "binary-value"
    assert to_plain(72.5) == 72.5


def test_local_objects_are_kept_before_initialize() -> None:
    device = BacpyDevice(7, "127.255.255.255", "127.0.0.1")
    device.add_object(("analog-value", 1))
    device.set_property(("analog-value", 1), "present-value", 21.5)
    device.set_property(("analog-value", 1), "object-name", "zone-temp")

    assert device.get_local_objects() == [
        (("analog-value", 1), {"present-value": 21.5, "object-name": "zone-temp"})
    ]


def test_unknown_property_leaves_table_unchanged() -> None:
    device = BacpyDevice(7, "127.255.255.255", "127.0.0.1")
    device.add_object(("analog-value", 1))

    with pytest.raises(ConfigError):
        device.set_property(("analog-value", 1), "no-such-property", 1)
    assert device.get_object(("analog-value", 1)) == {}


def test_device_object_is_not_a_local_object() -> None:
    device = BacpyDevice(7, "127.255.255.255", "127.0.0.1")
    with pytest.raises(ConfigError):
        device.add_object(("device", 7))


def test_node_service_defaults_to_bacpy(tmp_path) -> None:
    node = NodeService(backup_path=tmp_path / "backup.yaml")
    device = node.local.create(LocalDeviceConfig(device_id=5, local_address="127.0.0.1"))
    assert isinstance(device, BacpyDevice)
    assert not device.is_initialized


def test_port_is_exclusive_on_loopback() -> None:
    port = _free_port()
    config = LocalDeviceConfig(device_id=5, local_address="127.0.0.1", port=port)
    first = LocalDeviceManager(bacpy_factory())
    second = LocalDeviceManager(bacpy_factory())

    first.create(config)
    first.initialize()
    try:
        second.create(config)
        with pytest.raises(BindError):
            second.initialize()
    finally:
        first.terminate()

    assert first.device.state == "terminated"
    second.create(config)
    second.initialize()
    assert second.is_initialized
    second.terminate()
