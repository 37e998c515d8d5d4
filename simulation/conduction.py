"""
Conduction Engine

Breadth-first propagation of energization from live sources through
conducting devices. Pure function of the current device/connection state.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Set, Tuple

from network.components import Connection, Device, DeviceKind, SwitchState

Adjacency = Dict[str, List[Tuple[str, str]]]


@dataclass
class ConductionResult:
    """Energized devices and connections"""
    energized_devices: Set[str] = field(default_factory=set)
    energized_connections: Set[str] = field(default_factory=set)

    def is_energized(self, device_id: str) -> bool:
        return device_id in self.energized_devices


def is_conducting(device: Device) -> bool:
    """Whether a device passes current through itself"""
    kind = device.kind
    if kind is DeviceKind.SOURCE:
        return device.source_energized
    if kind in (DeviceKind.CIRCUIT_BREAKER, DeviceKind.DISCONNECTOR):
        return device.state is SwitchState.CLOSED
    if kind is DeviceKind.EARTH_SWITCH:
        return False
    if kind in (DeviceKind.LOAD, DeviceKind.JUNCTION, DeviceKind.TRANSFORMER,
                DeviceKind.INSTRUMENT_TRANSFORMER):
        return True
    raise ValueError(f"Unhandled device kind: {kind}")


def build_adjacency(devices: Iterable[Device], connections: Iterable[Connection]) -> Adjacency:
    """Undirected adjacency, skipping connections to unknown devices"""
    known = {dev.id for dev in devices}
    adjacency: Adjacency = {dev_id: [] for dev_id in known}
    for conn in connections:
        if conn.a not in known or conn.b not in known:
            continue
        adjacency[conn.a].append((conn.b, conn.id))
        adjacency[conn.b].append((conn.a, conn.id))
    return adjacency


def compute_conduction(devices: Iterable[Device], connections: Iterable[Connection]) -> ConductionResult:
    """
    Compute the energized part of the network

    Every connection leaving an energized device is energized, even when the
    far end is an open device, so live stubs show up to the open point.

    Args:
        devices: All devices of the network
        connections: All connections of the network

    Returns:
        Energized device and connection identifiers
    """
    devices = list(devices)
    by_id = {dev.id: dev for dev in devices}
    adjacency = build_adjacency(devices, connections)
    result = ConductionResult()

    queue = deque(
        dev.id for dev in devices
        if dev.kind is DeviceKind.SOURCE and dev.source_energized
    )

    while queue:
        device_id = queue.popleft()
        if device_id in result.energized_devices:
            continue
        if not is_conducting(by_id[device_id]):
            continue

        result.energized_devices.add(device_id)

        for other_id, conn_id in adjacency[device_id]:
            result.energized_connections.add(conn_id)
            if other_id not in result.energized_devices and is_conducting(by_id[other_id]):
                queue.append(other_id)

    return result
