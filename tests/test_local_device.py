from __future__ import annotations

import pytest

from bacnode.core import local_device
from bacnode.core.errors import BindError, ConfigError, NotFoundError, NotInitializedError
from bacnode.core.local_device import LocalDeviceManager
from bacnode.core.model import LocalDeviceConfig, ObjectRecord
from simulated_network import SimulatedNetwork


@pytest.fixture
def network():
    net = SimulatedNetwork()
    yield net
    net.close()


def _config(**overrides) -> LocalDeviceConfig:
    values = {"device_id": 1, "local_address": "192.168.1.10"}
    values.update(overrides)
    return LocalDeviceConfig(**values)


def test_create_applies_defaults(monkeypatch: pytest.MonkeyPatch, network: SimulatedNetwork) -> None:
    monkeypatch.setattr(local_device, "get_ip", lambda: "10.0.4.7")
    manager = LocalDeviceManager(network.factory)

    device = manager.create()

    assert manager.config.device_id == 1338
    assert manager.config.broadcast_address == "10.0.4.255"
    assert device.port == 47808
    assert device.timeout == 10000
    assert manager.config.destination_port == 47808
    assert not manager.is_initialized


def test_create_rejects_unresolvable_address(network: SimulatedNetwork) -> None:
    manager = LocalDeviceManager(network.factory)
    with pytest.raises(ConfigError):
        manager.create(_config(local_address="not-an-ip"))


def test_create_rejects_out_of_range_device_id(network: SimulatedNetwork) -> None:
    manager = LocalDeviceManager(network.factory)
    with pytest.raises(ConfigError):
        manager.create(_config(device_id=4194304))


def test_device_before_create_raises() -> None:
    manager = LocalDeviceManager(SimulatedNetwork().factory)
    with pytest.raises(NotInitializedError):
        manager.initialize()


def test_second_device_on_same_port_fails_to_bind(network: SimulatedNetwork) -> None:
    first = LocalDeviceManager(network.factory)
    first.create(_config())
    first.initialize()

    second = LocalDeviceManager(network.factory)
    second.create(_config(device_id=2))
    with pytest.raises(BindError):
        second.initialize()


def test_port_is_free_right_after_terminate(network: SimulatedNetwork) -> None:
    manager = LocalDeviceManager(network.factory)
    manager.create(_config())
    manager.initialize()
    assert network.is_bound(47808)

    manager.terminate()
    assert not network.is_bound(47808)

    other = LocalDeviceManager(network.factory)
    other.create(_config(device_id=2))
    other.initialize()
    assert other.is_initialized


def test_terminate_is_idempotent(network: SimulatedNetwork) -> None:
    manager = LocalDeviceManager(network.factory)
    manager.terminate()

    manager.create(_config())
    manager.terminate()

    manager.initialize()
    manager.terminate()
    manager.terminate()
    assert not manager.is_initialized


def test_add_or_update_object_is_idempotent(network: SimulatedNetwork) -> None:
    manager = LocalDeviceManager(network.factory)
    manager.create(_config())
    record = ObjectRecord(("analog-value", 1), {"present-value": 21.0, "object-name": "zone-temp"})

    first = manager.add_or_update_object(record)
    second = manager.add_or_update_object(record)

    assert first == second
    assert len(manager.local_objects()) == 1


def test_add_or_update_never_touches_identity(network: SimulatedNetwork) -> None:
    manager = LocalDeviceManager(network.factory)
    manager.create(_config())
    manager.add_or_update_object(ObjectRecord(("analog-value", 1), {"present-value": 1.0}))

    updated = manager.add_or_update_object(
        ObjectRecord(
            ("analog-value", 1),
            {"present-value": 2.0, "object-type": "binary-value", "object-identifier": ("binary-value", 9)},
        )
    )

    assert updated.object_identifier == ("analog-value", 1)
    assert updated.object_type == "analog-value"
    assert updated.properties == {"present-value": 2.0}


def test_remove_missing_object_raises(network: SimulatedNetwork) -> None:
    manager = LocalDeviceManager(network.factory)
    manager.create(_config())
    with pytest.raises(NotFoundError):
        manager.remove_object(("analog-value", 7))


def test_remove_all_objects(network: SimulatedNetwork) -> None:
    manager = LocalDeviceManager(network.factory)
    manager.create(_config())
    for instance in range(3):
        manager.add_or_update_object(ObjectRecord(("binary-value", instance), {"present-value": "active"}))

    manager.remove_all_objects()
    assert manager.local_objects() == []


def test_backup_reads_live_tunables(network: SimulatedNetwork) -> None:
    manager = LocalDeviceManager(network.factory)
    device = manager.create(_config())
    device.retries = 7
    device.seg_window = 12

    snapshot = manager.backup()
    assert snapshot.config.retries == 7
    assert snapshot.config.seg_window == 12
    assert snapshot.objects == ()


def test_reset_keeps_objects_and_applies_overrides(network: SimulatedNetwork) -> None:
    manager = LocalDeviceManager(network.factory)
    manager.create(_config(timeout=4000))
    manager.initialize()
    manager.device.seg_timeout = 3000
    manager.add_or_update_object(ObjectRecord(("analog-value", 1), {"present-value": 72.5}))
    old_device = manager.device
    before = manager.backup()

    after = manager.reset({"device-id": 1112, "port": 47809})

    assert manager.device is not old_device
    assert old_device.state == "terminated"
    assert manager.is_initialized
    assert network.is_bound(47809)
    assert not network.is_bound(47808)
    assert after.config.device_id == 1112
    assert after.config.port == 47809
    assert after.config.timeout == 4000
    assert after.config.seg_timeout == 3000
    assert after.config.broadcast_address == before.config.broadcast_address
    assert after.objects == before.objects


def test_reset_rejects_unknown_keys(network: SimulatedNetwork) -> None:
    manager = LocalDeviceManager(network.factory)
    manager.create(_config())
    with pytest.raises(ConfigError):
        manager.reset({"colour": "blue"})


def test_terminated_device_cannot_be_initialized_again(network: SimulatedNetwork) -> None:
    manager = LocalDeviceManager(network.factory)
    manager.create(_config())
    manager.initialize()
    manager.terminate()

    with pytest.raises(NotInitializedError, match="terminated"):
        manager.initialize()

    manager.create(_config())
    manager.initialize()
    assert manager.is_initialized


def test_initialize_twice_is_a_bind_error(network: SimulatedNetwork) -> None:
    manager = LocalDeviceManager(network.factory)
    manager.create(_config())
    manager.initialize()

    with pytest.raises(BindError, match="already bound"):
        manager.initialize()


def test_clear_releases_port_and_forgets_device(network: SimulatedNetwork) -> None:
    manager = LocalDeviceManager(network.factory)
    manager.create(_config())
    manager.initialize()
    assert network.is_bound(47808)

    manager.clear()

    assert not network.is_bound(47808)
    assert manager.config is None
    assert not manager.is_initialized
    with pytest.raises(NotInitializedError):
        manager.device

    manager.create(_config(device_id=2))
    manager.initialize()
    assert manager.is_initialized
