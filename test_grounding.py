"""
Tests for earthing propagation and energized/grounded conflicts
"""

import random
from types import SimpleNamespace

import pytest

from conftest import CLOSED, OPEN, cb, chain, ds, es, junction, load, simulate, source
from network import Connection, Device, DeviceKind
from simulation import compute_conduction, compute_grounding, find_conflicts, is_conducting
from simulation.grounding import _is_terminal


def test_ground_stops_at_open_disconnector():
    # SRC - CB1 - J1 - DS1(open) - J2 - ES1(closed)
    devices = [source(), cb("CB1", state=OPEN), junction("J1"), ds("DS1", state=OPEN),
               junction("J2"), es("ES1", state=CLOSED)]
    result = compute_grounding(devices, chain(*devices))

    assert result.grounded_devices == {"ES1", "J2", "DS1"}
    assert result.grounded_connections == {"c4", "c5"}


def test_ground_passes_closed_switches_but_not_sources():
    devices = [source(), ds("DS1"), cb("CB1"), es("ES1", state=CLOSED)]
    result = compute_grounding(devices, chain(*devices))

    assert result.grounded_devices == {"ES1", "CB1", "DS1"}
    assert "SRC" not in result.grounded_devices
    # the connection touching the source is reached but the source is not
    assert result.grounded_connections == {"c1", "c2", "c3"}


def test_open_earth_switch_grounds_nothing():
    devices = [junction("J1"), es("ES1")]
    result = compute_grounding(devices, chain(*devices))
    assert not result.grounded_devices


def test_neighbouring_earth_switch_is_terminal():
    # ES1(closed) - J1 - ES2(open) - J2
    devices = [es("ES1", state=CLOSED), junction("J1"), es("ES2"), junction("J2")]
    result = compute_grounding(devices, chain(*devices))
    assert result.grounded_devices == {"ES1", "J1", "ES2"}
    assert "J2" not in result.grounded_devices


def test_conflict_when_earthing_a_live_section():
    devices = [source(), cb("CB1"), junction("J1"), es("ES1", state=CLOSED)]
    connections = chain(*devices)
    conflicts = find_conflicts(compute_conduction(devices, connections),
                               compute_grounding(devices, connections))
    # J1-ES1 is energized up to the earth switch and grounded from it
    assert "c3" in conflicts


def test_no_conflict_on_isolated_section():
    devices = [source(), cb("CB1", state=OPEN), junction("J1"), es("ES1", state=CLOSED)]
    connections = chain(*devices)
    conflicts = find_conflicts(compute_conduction(devices, connections),
                               compute_grounding(devices, connections))
    assert not conflicts


def test_ground_spreads_only_through_passing_devices():
    rng = random.Random(7)
    kinds = list(DeviceKind)
    for _ in range(50):
        devices = []
        for i in range(10):
            device = Device(f"D{i}", rng.choice(kinds), source_energized=True)
            if device.state is not None:
                device.state = rng.choice([OPEN, CLOSED])
            devices.append(device)
        connections = [Connection(f"c{i}", *[f"D{n}" for n in rng.sample(range(10), 2)]) for i in range(18)]
        by_id = {dev.id: dev for dev in devices}
        result = compute_grounding(devices, connections)

        def is_seed(dev_id):
            dev = by_id[dev_id]
            return dev.kind is DeviceKind.EARTH_SWITCH and dev.state is CLOSED

        def spreads(dev_id):
            dev = by_id[dev_id]
            return dev_id in result.grounded_devices and (is_seed(dev_id) or (
                dev.kind is not DeviceKind.SOURCE and dev.kind is not DeviceKind.EARTH_SWITCH
                and is_conducting(dev)))

        for dev_id in result.grounded_devices:
            assert by_id[dev_id].kind is not DeviceKind.SOURCE
            if is_seed(dev_id):
                continue
            neighbours = [c.other(dev_id) for c in connections if dev_id in c.endpoints]
            assert any(spreads(n) for n in neighbours), f"{dev_id} grounded without a passing neighbour"


def test_earthed_spur_off_a_breaker_ring_stays_local():
    # SRC - J1 = (CB1 | CB2) = J2 - DSS(open) - S1 - ES1
    devices = [source(), junction("J1"), cb("CB1"), cb("CB2"), junction("J2"),
               ds("DSS", state=OPEN), junction("S1"), es("ES1")]
    connections = [
        Connection("c1", "SRC", "J1"),
        Connection("c2", "J1", "CB1"),
        Connection("c3", "CB1", "J2"),
        Connection("c4", "J1", "CB2"),
        Connection("c5", "CB2", "J2"),
        Connection("c6", "J2", "DSS"),
        Connection("c7", "DSS", "S1"),
        Connection("c8", "S1", "ES1"),
    ]
    sim = simulate(devices, connections)

    assert sim.schedule_command("ES1", DeviceKind.EARTH_SWITCH, CLOSED).accepted
    sim.run_until_idle()

    assert sim.network.device("ES1").state is CLOSED
    assert sim.grounding.grounded_devices == {"ES1", "S1", "DSS"}
    assert sim.grounding.grounded_connections == {"c7", "c8"}
    ring = {"SRC", "J1", "CB1", "CB2", "J2"}
    assert not ring & sim.grounding.grounded_devices
    assert ring <= sim.conduction.energized_devices
    assert not sim.conflicts()


def test_unhandled_kind_is_refused():
    with pytest.raises(ValueError, match="Unhandled device kind"):
        _is_terminal(SimpleNamespace(id="X1", kind="relay", state=None))
