"""
Shared fixtures and network builders for the test suites
"""

import random

import pytest

from network import Connection, Device, DeviceKind, Network, ProtectionSettings, SwitchState
from simulation import SwitchgearSimulation, default_config

OPEN = SwitchState.OPEN
CLOSED = SwitchState.CLOSED


def quiet_config(**protection):
    """Configuration without mechanical failures or breaker destruction"""
    config = default_config()
    for timing in config.timings.values():
        timing.failure_probability = 0.0
    config.protection.destruction_probability = 0.0
    for name, value in protection.items():
        setattr(config.protection, name, value)
    config.seed = 1
    return config


def chain(*devices, bus_group=None, rating=None):
    """Connections c1..cN linking the given devices in order"""
    ids = [d.id if isinstance(d, Device) else d for d in devices]
    return [
        Connection(f"c{i + 1}", a, b, bus_group=bus_group or "", rating_mva=rating)
        for i, (a, b) in enumerate(zip(ids, ids[1:]))
    ]


def source(dev_id="SRC", on=True):
    return Device(dev_id, DeviceKind.SOURCE, source_energized=on)


def cb(dev_id, state=CLOSED, **protection):
    return Device(dev_id, DeviceKind.CIRCUIT_BREAKER, state=state,
                  protection=ProtectionSettings(**protection) if protection else None)


def ds(dev_id, state=CLOSED, **protection):
    return Device(dev_id, DeviceKind.DISCONNECTOR, state=state,
                  protection=ProtectionSettings(**protection) if protection else None)


def es(dev_id, state=OPEN):
    return Device(dev_id, DeviceKind.EARTH_SWITCH, state=state)


def junction(dev_id):
    return Device(dev_id, DeviceKind.JUNCTION)


def load(dev_id="LOAD", power=None):
    return Device(dev_id, DeviceKind.LOAD, power=power)


def transformer(dev_id="TX"):
    return Device(dev_id, DeviceKind.TRANSFORMER)


def simulate(devices, connections, rules=None, config=None):
    return SwitchgearSimulation(Network(devices, connections), rules, config or quiet_config(),
                                rng=random.Random(1))


@pytest.fixture
def feeder_sim():
    """SRC - CB1 - DS1 - J1 - LOAD with DAR (2 attempts) on CB1 and auto-isolation on DS1"""
    devices = [
        source(),
        cb("CB1", dar_enabled=True, attempts=2, dead_time_s=0.8),
        ds("DS1", auto_isolate=True),
        junction("J1"),
        load(),
    ]
    return simulate(devices, chain(*devices))
