"""
Grounding Engine

Breadth-first propagation of earthing from closed earth switches. Sources
terminate the search; open breakers/disconnectors and neighbouring earth
switches are marked grounded but not crossed.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Set

from network.components import Connection, Device, DeviceKind, SwitchState
from .conduction import ConductionResult, build_adjacency, is_conducting


@dataclass
class GroundingResult:
    """Grounded devices and connections"""
    grounded_devices: Set[str] = field(default_factory=set)
    grounded_connections: Set[str] = field(default_factory=set)

    def is_grounded(self, device_id: str) -> bool:
        return device_id in self.grounded_devices


def _is_terminal(device: Device) -> bool:
    """Devices that receive ground but never pass it on"""
    if device.kind is DeviceKind.EARTH_SWITCH:
        return True
    if device.kind in (DeviceKind.CIRCUIT_BREAKER, DeviceKind.DISCONNECTOR):
        return device.state is not SwitchState.CLOSED
    if device.kind in (DeviceKind.SOURCE, DeviceKind.LOAD, DeviceKind.JUNCTION,
                       DeviceKind.TRANSFORMER, DeviceKind.INSTRUMENT_TRANSFORMER):
        return False
    raise ValueError(f"Unhandled device kind: {device.kind}")


def compute_grounding(devices: Iterable[Device], connections: Iterable[Connection]) -> GroundingResult:
    """
    Compute the earthed part of the network

    Args:
        devices: All devices of the network
        connections: All connections of the network

    Returns:
        Grounded device and connection identifiers
    """
    devices = list(devices)
    by_id = {dev.id: dev for dev in devices}
    adjacency = build_adjacency(devices, connections)
    result = GroundingResult()

    queue = deque(
        dev.id for dev in devices
        if dev.kind is DeviceKind.EARTH_SWITCH and dev.state is SwitchState.CLOSED
    )

    while queue:
        device_id = queue.popleft()
        if device_id in result.grounded_devices:
            continue
        device = by_id[device_id]
        if device.kind is DeviceKind.SOURCE:
            continue

        result.grounded_devices.add(device_id)

        for other_id, conn_id in adjacency[device_id]:
            other = by_id[other_id]
            result.grounded_connections.add(conn_id)

            if other.kind is DeviceKind.SOURCE:
                continue
            if _is_terminal(other):
                result.grounded_devices.add(other_id)
                continue
            # pass-through kinds, or a closed breaker/disconnector
            if other_id not in result.grounded_devices and is_conducting(other):
                queue.append(other_id)

    return result


def find_conflicts(conduction: ConductionResult, grounding: GroundingResult) -> Set[str]:
    """Connections that are energized and grounded at the same time"""
    return conduction.energized_connections & grounding.grounded_connections
