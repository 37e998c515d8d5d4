"""
Tests for fault injection, breaker tripping, auto-reclose and resets
"""

from types import SimpleNamespace

import pytest

from conftest import CLOSED, OPEN, cb, chain, ds, junction, load, quiet_config, simulate, source, transformer
from network import DeviceKind, Health
from simulation import EventType, FaultSeverity, FaultStatus


def _messages(sim, event_type):
    return [e.message for e in reversed(sim.events.of_type(event_type))]


def test_fault_trips_nearest_breakers_on_both_sides():
    devices = [source(), cb("CB1"), junction("J1"), junction("J2"), cb("CB2"), load()]
    sim = simulate(devices, chain(*devices))

    fault_id = sim.inject_fault("c3", severity=FaultSeverity.SEVERE, persistent=True)
    isolation = sim.protection.isolations[fault_id]
    assert isolation.trip_set == ["CB1", "CB2"]
    assert isolation.tripped == ["CB1", "CB2"]
    assert _messages(sim, EventType.FAULT_ALARM) == ["ALARM FAULT (SEVERE) between J1 and J2 (busbar bb-c3)"]

    sim.advance(1.0)
    assert sim.network.device("CB1").state is OPEN
    assert sim.network.device("CB2").state is OPEN
    assert not sim.conduction.is_energized("J1")


def test_search_stops_at_open_switches():
    devices = [source(), cb("CB1"), ds("DS1", state=OPEN), junction("J1"), load()]
    sim = simulate(devices, chain(*devices))

    trip_set, order = sim.protection.find_trip_set(("J1",))
    assert trip_set == []
    assert order == ["J1", "DS1", "LOAD"]


def test_persistent_fault_markers_and_blocking(feeder_sim):
    fault_id = feeder_sim.inject_fault("c3", position=(12.0, 40.0), persistent=True)

    marker = feeder_sim.protection.markers[fault_id]
    assert marker.position == (12.0, 40.0)
    assert marker.bus_group == "bb-c3"
    assert feeder_sim.protection.fault_blocked_devices() == {"DS1", "J1"}
    assert [f.id for f in feeder_sim.protection.active_faults_on_bus_group("bb-c3")] == [fault_id]

    assert feeder_sim.clear_fault(fault_id)
    assert not feeder_sim.clear_fault(fault_id)
    assert not feeder_sim.protection.markers
    assert not feeder_sim.protection.fault_blocked_devices()

    with pytest.raises(KeyError):
        feeder_sim.clear_fault("fault-missing")


def test_persistent_fault_recloses_then_locks_out(feeder_sim):
    feeder_sim.inject_fault("c3", severity="severe", persistent=True)
    feeder_sim.advance(10.0)

    assert _messages(feeder_sim, EventType.DAR_RECLOSE) == [
        "DAR RECLOSE attempt 1/2 on CB1",
        "DAR RECLOSE attempt 2/2 on CB1",
    ]
    assert _messages(feeder_sim, EventType.DAR_LOCKOUT) == ["DAR LOCKOUT on CB1"]

    breaker = feeder_sim.network.device("CB1")
    assert breaker.state is OPEN
    assert breaker.protection.lockout
    # adjacent auto-isolate disconnector follows the lockout
    assert feeder_sim.events.of_type(EventType.AUTO_ISOLATE)
    assert feeder_sim.network.device("DS1").state is OPEN
    assert not feeder_sim.protection.dar_sequences()
    assert not feeder_sim.conduction.is_energized("LOAD")


def test_reclose_timing(feeder_sim):
    feeder_sim.inject_fault("c3", persistent=True)
    feeder_sim.advance(0.79)
    assert not feeder_sim.events.of_type(EventType.DAR_RECLOSE)
    feeder_sim.advance(0.02)
    assert len(feeder_sim.events.of_type(EventType.DAR_RECLOSE)) == 1
    assert feeder_sim.network.device("CB1").moving


def test_transient_fault_clears_without_reclose(feeder_sim):
    fault_id = feeder_sim.inject_fault("c3")
    assert fault_id not in feeder_sim.protection.markers

    feeder_sim.advance(0.06)
    assert feeder_sim.protection.faults[fault_id].status is FaultStatus.CLEARED
    assert _messages(feeder_sim, EventType.FAULT_CLEARED) == [f"FAULT CLEARED {fault_id}"]

    feeder_sim.advance(5.0)
    assert not feeder_sim.events.of_type(EventType.DAR_RECLOSE)
    assert feeder_sim.network.device("CB1").state is OPEN
    assert not feeder_sim.network.device("CB1").protection.lockout


def test_clearing_fault_stops_auto_reclose(feeder_sim):
    fault_id = feeder_sim.inject_fault("c3", persistent=True)
    feeder_sim.advance(0.3)
    assert feeder_sim.protection.dar_sequences()

    feeder_sim.clear_fault(fault_id)
    assert not feeder_sim.protection.dar_sequences()
    feeder_sim.advance(5.0)
    assert not feeder_sim.events.of_type(EventType.DAR_RECLOSE)
    assert feeder_sim.network.device("CB1").state is OPEN


def test_extreme_fault_can_destroy_breaker():
    devices = [source(), cb("CB1"), junction("J1"), load()]
    sim = simulate(devices, chain(*devices), config=quiet_config(destruction_probability=1.0))

    fault_id = sim.inject_fault("c2", severity=FaultSeverity.EXTREME, persistent=True)
    breaker = sim.network.device("CB1")
    assert breaker.health is Health.DESTROYED
    assert sim.protection.isolations[fault_id].destroyed == ["CB1"]
    assert _messages(sim, EventType.BREAKER_DESTROYED) == ["CB FAIL (DESTROYED) CB1 under EXTREME fault"]
    assert not sim.scheduler.pending_devices()

    # a destroyed breaker cannot open, so the fault stays fed
    sim.advance(1.0)
    assert breaker.state is CLOSED
    assert sim.conduction.is_energized("J1")

    sim.reset_condition("CB1")
    assert breaker.health is Health.OK
    assert _messages(sim, EventType.RESET) == ["RESET CB1"]
    assert sim.schedule_command("CB1", DeviceKind.CIRCUIT_BREAKER, OPEN).accepted


def test_no_breaker_faults_the_transformer():
    devices = [source(), cb("CB0", state=OPEN), ds("DS1"), transformer("TX1"), load()]
    sim = simulate(devices, chain(*devices))

    fault_id = sim.inject_fault("c3", persistent=True)
    isolation = sim.protection.isolations[fault_id]

    assert isolation.trip_set == []
    assert isolation.faulted_transformer == "TX1"
    assert sim.network.device("TX1").health is Health.FAILED
    assert _messages(sim, EventType.TRANSFORMER_FAULTED) == ["TX FAULTED TX1 (no CB isolation found)"]
    assert not sim.events.of_type(EventType.COMMAND_ISSUED)
    assert not sim.scheduler.pending_devices()


def test_reset_cancels_motion_and_auto_reclose(feeder_sim):
    feeder_sim.inject_fault("c3", persistent=True)
    feeder_sim.advance(0.3)
    feeder_sim.reset_condition("CB1")

    assert not feeder_sim.protection.dar_sequences()
    feeder_sim.advance(5.0)
    assert not feeder_sim.events.of_type(EventType.DAR_RECLOSE)


def test_reset_drops_pending_command():
    devices = [source(), cb("CB1"), load()]
    sim = simulate(devices, chain(*devices))
    sim.schedule_command("CB1", DeviceKind.CIRCUIT_BREAKER, OPEN)
    sim.reset_condition("CB1")

    breaker = sim.network.device("CB1")
    assert not breaker.moving
    assert not sim.scheduler.is_pending("CB1")
    sim.run_until_idle()
    assert breaker.state is CLOSED


def test_reset_of_healthy_idle_device_changes_nothing():
    devices = [source(), cb("CB1"), load()]
    sim = simulate(devices, chain(*devices))
    sim.reset_condition("CB1")
    sim.reset_condition("CB1")

    breaker = sim.network.device("CB1")
    assert breaker.state is CLOSED
    assert breaker.health is Health.OK
    assert not breaker.moving
    assert not breaker.protection.lockout


def test_protection_toggles(feeder_sim):
    protection = feeder_sim.protection
    assert protection.toggle_dar("CB1") is False
    assert protection.toggle_dar("CB1") is True
    assert protection.toggle_auto_isolate("DS1") is False
    assert not feeder_sim.network.device("DS1").protection.auto_isolate

    with pytest.raises(ValueError):
        protection.toggle_dar("DS1")
    with pytest.raises(ValueError):
        protection.toggle_auto_isolate("CB1")
    with pytest.raises(ValueError):
        protection.configure_protection("J1", dar_enabled=True)

    protection.configure_protection("CB1", attempts=3, dead_time_s=1.5)
    settings = feeder_sim.network.device("CB1").protection
    assert (settings.attempts, settings.dead_time_s) == (3, 1.5)


def test_reset_clears_lockout(feeder_sim):
    feeder_sim.inject_fault("c3", persistent=True)
    feeder_sim.advance(10.0)
    assert feeder_sim.network.device("CB1").protection.lockout

    feeder_sim.reset_condition("CB1")
    assert not feeder_sim.network.device("CB1").protection.lockout


def test_enabling_dar_fills_in_default_timing():
    devices = [source(), cb("CB1", attempts=0, dead_time_s=0.0), load()]
    sim = simulate(devices, chain(*devices))

    assert sim.protection.toggle_dar("CB1") is True
    settings = sim.network.device("CB1").protection
    assert (settings.attempts, settings.dead_time_s) == (1, 0.8)


def test_trip_search_refuses_unhandled_kind(feeder_sim):
    with pytest.raises(ValueError, match="Unhandled device kind"):
        feeder_sim.protection._blocks_search(SimpleNamespace(id="X1", kind="relay", state=None))
