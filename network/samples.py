"""
Sample Networks

Small ready-made substations used by the demo script.
"""

from typing import List, Tuple

from .components import (
    Connection,
    Device,
    DeviceKind,
    InterlockRule,
    PowerProfile,
    PowerRole,
    ProtectionSettings,
    SwitchState,
)
from .topology import Network


def build_demo_substation() -> Tuple[Network, List[InterlockRule]]:
    """
    Single-busbar substation with two feeders

        SRC1 - DS1 - CB1 - BUS - CB2 - DS2 - TX1 - LOAD1
                            |
                            +--- CB3 - DS3 - LOAD2
                                               |
                                               ES3

    CB2 carries DAR (two attempts), DS2 is set to auto-isolate. ES3 is
    interlocked against DS3 and vice versa.
    """
    closed = SwitchState.CLOSED
    devices = [
        Device("SRC1", DeviceKind.SOURCE, label="Grid infeed", source_energized=True),
        Device("DS1", DeviceKind.DISCONNECTOR, state=closed),
        Device("CB1", DeviceKind.CIRCUIT_BREAKER, state=closed),
        Device("BUS", DeviceKind.JUNCTION, label="Main busbar"),
        Device("CB2", DeviceKind.CIRCUIT_BREAKER, state=closed,
               protection=ProtectionSettings(dar_enabled=True, attempts=2, dead_time_s=0.8)),
        Device("DS2", DeviceKind.DISCONNECTOR, state=closed,
               protection=ProtectionSettings(auto_isolate=True)),
        Device("TX1", DeviceKind.TRANSFORMER, label="Feeder transformer"),
        Device("LOAD1", DeviceKind.LOAD, power=PowerProfile(PowerRole.LOAD, p_mw=60.0, q_mvar=20.0)),
        Device("CB3", DeviceKind.CIRCUIT_BREAKER, state=closed),
        Device("DS3", DeviceKind.DISCONNECTOR, state=closed),
        Device("ES3", DeviceKind.EARTH_SWITCH, state=SwitchState.OPEN),
        Device("LOAD2", DeviceKind.LOAD, power=PowerProfile(PowerRole.LOAD, p_mw=30.0, q_mvar=10.0)),
    ]
    connections = [
        Connection("c1", "SRC1", "DS1", bus_group="infeed"),
        Connection("c2", "DS1", "CB1", bus_group="infeed"),
        Connection("c3", "CB1", "BUS", bus_group="main"),
        Connection("c4", "BUS", "CB2", bus_group="main"),
        Connection("c5", "CB2", "DS2", bus_group="feeder1"),
        Connection("c6", "DS2", "TX1", bus_group="feeder1", rating_mva=50.0),
        Connection("c7", "TX1", "LOAD1", bus_group="feeder1-lv", rating_mva=50.0),
        Connection("c8", "BUS", "CB3", bus_group="main"),
        Connection("c9", "CB3", "DS3", bus_group="feeder2"),
        Connection("c10", "DS3", "LOAD2", bus_group="feeder2-out"),
        Connection("c11", "LOAD2", "ES3", bus_group="feeder2-out"),
    ]
    rules = [
        InterlockRule.forbids("ES3", closed, "DS3", closed),
        InterlockRule.forbids("DS3", closed, "ES3", closed),
    ]
    return Network(devices, connections), rules
