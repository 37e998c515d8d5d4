"""
Switchgear Network Topology

Container indexing devices and connections of one mimic, with adjacency
lookups and the single write path used by the command scheduler and the
protection engine.
"""

import copy
from collections import Counter
from dataclasses import fields
from typing import Any, Callable, Dict, Iterable, List, Tuple

from loguru import logger

from .components import (
    Connection,
    Device,
    DeviceKind,
    NetworkValidationError,
    UnknownConnectionError,
    UnknownDeviceError,
)

DeviceListener = Callable[[Device, Dict[str, Any]], None]

_DEVICE_FIELDS = {f.name for f in fields(Device)}
_IMMUTABLE_FIELDS = {"id", "kind"}


class Network:
    """
    Device/connection graph of a substation

    Read-side engines work on ``device_list()`` / ``connection_list()``.
    Device fields are only changed through ``update_device``, which notifies
    listeners synchronously so that dependent recomputation sees the new
    state before anything else runs.
    """

    def __init__(self, devices: Iterable[Device], connections: Iterable[Connection]):
        self.devices: Dict[str, Device] = {}
        self.connections: Dict[str, Connection] = {}
        self._adjacency: Dict[str, List[Tuple[str, str]]] = {}
        self._listeners: List[DeviceListener] = []

        devices = list(devices)
        connections = list(connections)
        self._validate(devices, connections)

        for device in devices:
            self.devices[device.id] = device
            self._adjacency[device.id] = []

        for conn in connections:
            self.connections[conn.id] = conn
            self._adjacency[conn.a].append((conn.b, conn.id))
            self._adjacency[conn.b].append((conn.a, conn.id))

        logger.debug(f"Network built: {len(self.devices)} devices, {len(self.connections)} connections")

    @staticmethod
    def _validate(devices: List[Device], connections: List[Connection]):
        dup_devices = [d for d, n in Counter(dev.id for dev in devices).items() if n > 1]
        if dup_devices:
            raise NetworkValidationError(f"Duplicate device ids: {sorted(dup_devices)}")

        dup_conns = [c for c, n in Counter(conn.id for conn in connections).items() if n > 1]
        if dup_conns:
            raise NetworkValidationError(f"Duplicate connection ids: {sorted(dup_conns)}")

        known = {dev.id for dev in devices}
        for conn in connections:
            missing = [end for end in conn.endpoints if end not in known]
            if missing:
                raise NetworkValidationError(
                    f"Connection {conn.id} references unknown devices: {missing}"
                )

    # ========================= Lookups =========================

    def device(self, device_id: str) -> Device:
        try:
            return self.devices[device_id]
        except KeyError:
            raise UnknownDeviceError(device_id) from None

    def connection(self, connection_id: str) -> Connection:
        try:
            return self.connections[connection_id]
        except KeyError:
            raise UnknownConnectionError(connection_id) from None

    def neighbours(self, device_id: str) -> List[Tuple[str, str]]:
        """(other device id, connection id) pairs around a device"""
        if device_id not in self._adjacency:
            raise UnknownDeviceError(device_id)
        return list(self._adjacency[device_id])

    def device_list(self) -> List[Device]:
        return list(self.devices.values())

    def connection_list(self) -> List[Connection]:
        return list(self.connections.values())

    def devices_of_kind(self, kind: DeviceKind) -> List[Device]:
        return [dev for dev in self.devices.values() if dev.kind is kind]

    # ========================= Write path =========================

    def subscribe(self, listener: DeviceListener):
        """Register a callback invoked with (device, changes) after every update"""
        self._listeners.append(listener)

    def update_device(self, device_id: str, **changes: Any) -> Device:
        """
        Apply field changes to a device and notify listeners

        Args:
            device_id: Device to change
            **changes: Device field names and their new values

        Returns:
            The updated device
        """
        device = self.device(device_id)

        unknown = set(changes) - _DEVICE_FIELDS
        if unknown:
            raise ValueError(f"Unknown device fields: {sorted(unknown)}")
        frozen = set(changes) & _IMMUTABLE_FIELDS
        if frozen:
            raise ValueError(f"Device fields cannot be changed: {sorted(frozen)}")

        applied = {}
        for name, value in changes.items():
            if getattr(device, name) != value:
                setattr(device, name, value)
                applied[name] = value

        if applied:
            for listener in list(self._listeners):
                listener(device, applied)

        return device

    # ========================= Export =========================

    def snapshot(self) -> 'Network':
        """Detached deep copy without listeners"""
        return Network(copy.deepcopy(self.device_list()), copy.deepcopy(self.connection_list()))

    def get_summary(self) -> Dict[str, Any]:
        """Get network summary statistics"""
        kinds = Counter(dev.kind.value for dev in self.devices.values())
        return {
            "total_devices": len(self.devices),
            "total_connections": len(self.connections),
            "bus_groups": len({conn.bus_group for conn in self.connections.values()}),
            "devices_by_kind": dict(kinds),
        }
