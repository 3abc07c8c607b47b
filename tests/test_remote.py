from __future__ import annotations

import pytest

from bacnode.core.service import NodeService
from bacnode.core.model import Abort, Error, LocalDeviceConfig, ObjectRecord, Reject, Success, Timeout
from bacnode.core.requests import WriteProperty
from bacnode.transports.base import AbortPDU
from simulated_network import SimulatedNetwork, SimulatedPeer


@pytest.fixture
def network():
    net = SimulatedNetwork()
    net.add_peer(
        SimulatedPeer(
            device_id=1234,
            name="SimpleServer",
            objects={
                ("analog-value", 1): {"object-name": "setpoint", "present-value": 70.0, "units": "degrees-fahrenheit"},
                ("binary-input", 0): {"object-name": "fan-status", "present-value": "inactive"},
            },
        )
    )
    yield net
    net.close()


@pytest.fixture
def node(network: SimulatedNetwork, tmp_path):
    service = NodeService(transport_factory=network.factory, backup_path=tmp_path / "backup.yaml", settle_s=0)
    service.local.create(LocalDeviceConfig(device_id=1, local_address="192.168.1.10"))
    service.local.initialize()
    service.discovery.find_devices_and_extended_info()
    yield service
    service.close()


def test_write_then_read_back(node: NodeService) -> None:
    outcomes = node.remote.write_properties(
        1234, ObjectRecord(("analog-value", 1), {"present-value": 72.5})
    )
    assert outcomes == {"present-value": Success(True)}

    outcome = node.remote.read_properties(1234, ("analog-value", 1), "present-value")
    assert outcome == Success({"present-value": 72.5})


def test_write_skips_identity_and_object_list(node: NodeService, network: SimulatedNetwork) -> None:
    record = ObjectRecord(
        ("analog-value", 1),
        {"object-type": "analog-value", "object-list": [], "present-value": 68.0, "object-name": "sp"},
    )

    outcomes = node.remote.write_properties(1234, record)

    assert set(outcomes) == {"present-value", "object-name"}
    written = [request for _, request in network.sent if isinstance(request, WriteProperty)]
    assert [w.property_id for w in written] == ["present-value", "object-name"]


def test_read_several_properties_in_one_request(node: NodeService, network: SimulatedNetwork) -> None:
    before = len(network.sent)
    outcome = node.remote.read_properties(1234, ("analog-value", 1), "present-value", "units")
    assert outcome == Success({"present-value": 70.0, "units": "degrees-fahrenheit"})
    assert len(network.sent) == before + 1


def test_list_objects(node: NodeService) -> None:
    outcome = node.remote.list_objects(1234)
    assert outcome == Success([("device", 1234), ("analog-value", 1), ("binary-input", 0)])


def test_read_all_objects_one_request_per_object(node: NodeService, network: SimulatedNetwork) -> None:
    before = len(network.sent)
    outcome = node.remote.read_all_objects_full_properties(1234)

    assert isinstance(outcome, Success)
    assert len(outcome.value) == 3
    assert all(isinstance(item, Success) for item in outcome.value)
    fan = outcome.value[2].value
    assert fan["object-identifier"] == ("binary-input", 0)
    assert fan["present-value"] == "inactive"
    # object-list read plus one read per object
    assert len(network.sent) == before + 4


def test_unknown_object_is_an_error_outcome(node: NodeService) -> None:
    outcome = node.remote.read_properties(1234, ("analog-value", 99), "present-value")
    assert outcome == Error("object", "unknown-object")


def test_create_and_delete_remote_object(node: NodeService, network: SimulatedNetwork) -> None:
    record = ObjectRecord(("analog-value", 2), {"object-name": "new-point", "present-value": 1.5})

    assert node.remote.create_remote_object(1234, record) == Success(("analog-value", 2))
    assert network.peers[1234].objects[("analog-value", 2)] == {"object-name": "new-point", "present-value": 1.5}
    assert node.remote.create_remote_object(1234, record) == Error("object", "object-identifier-already-exists")

    assert node.remote.delete_remote_object(1234, ("analog-value", 2)) == Success(True)
    assert ("analog-value", 2) not in network.peers[1234].objects


def test_subscribe_cov(node: NodeService, network: SimulatedNetwork) -> None:
    outcome = node.remote.subscribe_cov(1234, ("analog-value", 1), lifetime_seconds=120)

    assert outcome == Success(True)
    subscription = network.peers[1234].subscriptions[0]
    assert subscription.lifetime_seconds == 120
    assert subscription.confirmed is False


def test_abort_and_reject_outcomes(node: NodeService, network: SimulatedNetwork) -> None:
    network.peers[1234].failure = AbortPDU("buffer-overflow")
    assert node.remote.list_objects(1234) == Abort("buffer-overflow")

    network.peers[1234].failure = None
    assert node.bridge.send_and_wait(1234, object()) == Reject("unrecognized-service")


def test_offline_device_times_out(node: NodeService, network: SimulatedNetwork) -> None:
    network.peers[1234].online = False
    outcome = node.remote.read_properties(1234, ("analog-value", 1), "present-value")
    assert isinstance(outcome, Timeout)
    assert isinstance(outcome.cause, TimeoutError)
