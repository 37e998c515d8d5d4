"""
Tests for the device/connection model and the network container
"""

import pytest

from network import (
    Connection,
    Device,
    DeviceKind,
    Health,
    InterlockRule,
    Network,
    NetworkValidationError,
    ProtectionSettings,
    SwitchState,
    UnknownConnectionError,
    UnknownDeviceError,
    build_demo_substation,
    carries_protection,
    is_switchable,
)


def test_device_defaults():
    breaker = Device("CB1", DeviceKind.CIRCUIT_BREAKER)
    assert breaker.label == "CB1"
    assert breaker.state is SwitchState.OPEN
    assert breaker.protection == ProtectionSettings()
    assert breaker.health is Health.OK

    earth = Device("ES1", DeviceKind.EARTH_SWITCH)
    assert earth.state is SwitchState.OPEN
    assert earth.protection is None

    junction = Device("J1", DeviceKind.JUNCTION)
    assert junction.state is None
    assert junction.is_open


def test_switchable_kinds():
    switchable = {kind for kind in DeviceKind if is_switchable(kind)}
    assert switchable == {DeviceKind.CIRCUIT_BREAKER, DeviceKind.DISCONNECTOR, DeviceKind.EARTH_SWITCH}
    assert SwitchState.OPEN.opposite() is SwitchState.CLOSED


def test_connection_default_bus_group():
    conn = Connection("c7", "A", "B")
    assert conn.bus_group == "bb-c7"
    assert conn.other("A") == "B"
    assert conn.other("B") == "A"


def test_duplicate_device_ids_rejected():
    devices = [Device("J1", DeviceKind.JUNCTION), Device("J1", DeviceKind.LOAD)]
    with pytest.raises(NetworkValidationError):
        Network(devices, [])


def test_dangling_connection_rejected():
    devices = [Device("J1", DeviceKind.JUNCTION)]
    with pytest.raises(NetworkValidationError, match="unknown devices"):
        Network(devices, [Connection("c1", "J1", "J2")])


def test_lookups():
    network = Network(
        [Device("J1", DeviceKind.JUNCTION), Device("J2", DeviceKind.JUNCTION)],
        [Connection("c1", "J1", "J2"), Connection("c2", "J1", "J2")],
    )
    assert network.neighbours("J1") == [("J2", "c1"), ("J2", "c2")]
    assert len(network.devices_of_kind(DeviceKind.JUNCTION)) == 2

    with pytest.raises(UnknownDeviceError):
        network.device("nope")
    with pytest.raises(UnknownConnectionError):
        network.connection("nope")


def test_update_device_notifies_listeners():
    network = Network([Device("CB1", DeviceKind.CIRCUIT_BREAKER)], [])
    seen = []
    network.subscribe(lambda device, changes: seen.append((device.id, changes)))

    network.update_device("CB1", state=SwitchState.CLOSED)
    assert network.device("CB1").is_closed
    assert seen == [("CB1", {"state": SwitchState.CLOSED})]

    # no-op changes are not announced
    network.update_device("CB1", state=SwitchState.CLOSED)
    assert len(seen) == 1


def test_update_device_rejects_bad_fields():
    network = Network([Device("CB1", DeviceKind.CIRCUIT_BREAKER)], [])
    with pytest.raises(ValueError):
        network.update_device("CB1", kind=DeviceKind.DISCONNECTOR)
    with pytest.raises(ValueError):
        network.update_device("CB1", colour="red")


def test_snapshot_is_detached():
    network, _ = build_demo_substation()
    copy = network.snapshot()
    copy.update_device("CB1", state=SwitchState.OPEN)
    assert network.device("CB1").is_closed


def test_mutex_rule_needs_two_members():
    with pytest.raises(ValueError):
        InterlockRule.mutex(["CB1"])


def test_demo_substation_summary():
    network, rules = build_demo_substation()
    summary = network.get_summary()
    assert summary["total_devices"] == 12
    assert summary["total_connections"] == 11
    assert summary["devices_by_kind"]["cb"] == 3
    assert len(rules) == 2


def test_protection_kinds():
    protected = {kind for kind in DeviceKind if carries_protection(kind)}
    assert protected == {DeviceKind.CIRCUIT_BREAKER, DeviceKind.DISCONNECTOR}
    with pytest.raises(ValueError, match="Unhandled device kind"):
        carries_protection("relay")
    with pytest.raises(ValueError, match="Unhandled device kind"):
        is_switchable("relay")
