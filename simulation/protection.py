"""
Protection & Fault Engine

Fault injection and the protection response to it:
1. Trip-set discovery: nearest closed breakers around the fault
2. Destructive failure roll under extreme faults
3. Trip commands issued through the command scheduler
4. Dead auto-reclose (DAR) with retries, lockout and cascading
   auto-isolation of adjacent disconnectors
5. Transformer fallback when no breaker can isolate the fault
"""

import random
import uuid
from collections import deque
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from loguru import logger

from network.components import Device, DeviceKind, Health, ProtectionSettings, SwitchState
from network.topology import Network
from .clock import SimulationClock, TimerHandle
from .config import SimulationConfig
from .events import EventCategory, EventLog, EventType
from .scheduler import CommandScheduler


class FaultSeverity(Enum):
    NORMAL = "normal"
    SEVERE = "severe"
    EXTREME = "extreme"


class FaultStatus(Enum):
    ACTIVE = "active"
    CLEARED = "cleared"


@dataclass
class Fault:
    """Short circuit placed on a connection"""
    id: str
    connection_id: str
    bus_group: str
    a: str
    b: str
    position: Tuple[float, float]
    severity: FaultSeverity
    persistent: bool
    status: FaultStatus = FaultStatus.ACTIVE
    created_at: float = 0.0

    @property
    def active(self) -> bool:
        return self.status is FaultStatus.ACTIVE

    @property
    def endpoints(self) -> Tuple[str, str]:
        return self.a, self.b


@dataclass
class FaultMarker:
    """Visible marker of a persistent fault"""
    fault_id: str
    connection_id: str
    bus_group: str
    position: Tuple[float, float]
    label: str


@dataclass
class IsolationResult:
    """What the protection did in response to one fault"""
    fault_id: str
    trip_set: List[str] = field(default_factory=list)
    tripped: List[str] = field(default_factory=list)
    destroyed: List[str] = field(default_factory=list)
    rejected: List[str] = field(default_factory=list)
    faulted_transformer: Optional[str] = None
    searched: List[str] = field(default_factory=list)


@dataclass
class DarSequence:
    """Auto-reclose cycle of one breaker for one fault"""
    fault_id: str
    breaker_id: str
    attempts: int
    dead_time_s: float
    attempts_made: int = 0
    timer: Optional[TimerHandle] = None
    finished: bool = False
    locked_out: bool = False

    def cancel(self):
        if self.timer is not None:
            self.timer.cancel()
        self.finished = True


class ProtectionEngine:
    """
    Resolves protection behaviour for injected faults

    All switching goes through the command scheduler, so single-pending
    and interlock guarantees hold for protection operations too.
    """

    def __init__(self, network: Network, scheduler: CommandScheduler, clock: SimulationClock,
                 events: EventLog, config: SimulationConfig, rng: Optional[random.Random] = None):
        self.network = network
        self.scheduler = scheduler
        self.clock = clock
        self.events = events
        self.config = config
        self.rng = rng or scheduler.rng

        self.faults: Dict[str, Fault] = {}
        self.markers: Dict[str, FaultMarker] = {}
        self.isolations: Dict[str, IsolationResult] = {}
        self._dar: Dict[Tuple[str, str], DarSequence] = {}
        self._clear_timers: Dict[str, TimerHandle] = {}

    # ========================= Fault lifecycle =========================

    def inject_fault(self, connection_id: str, position: Tuple[float, float] = (0.0, 0.0),
                     severity: Union[FaultSeverity, str] = FaultSeverity.NORMAL,
                     persistent: bool = False) -> str:
        """
        Place a fault on a connection and run the protection response

        Args:
            connection_id: Faulted connection
            position: Marker position supplied by the caller
            severity: normal, severe or extreme
            persistent: Persistent faults stay until cleared explicitly

        Returns:
            Identifier of the new fault
        """
        conn = self.network.connection(connection_id)
        severity = FaultSeverity(severity)

        fault = Fault(
            id=f"fault-{uuid.uuid4().hex[:6]}",
            connection_id=connection_id,
            bus_group=conn.bus_group,
            a=conn.a,
            b=conn.b,
            position=tuple(position),
            severity=severity,
            persistent=persistent,
            created_at=self.clock.now,
        )
        self.faults[fault.id] = fault

        self.events.append(
            EventCategory.ERROR, EventType.FAULT_ALARM,
            f"ALARM FAULT ({severity.value.upper()}) between {conn.a} and {conn.b} (busbar {conn.bus_group})",
            fault_id=fault.id,
        )

        if persistent:
            self.markers[fault.id] = FaultMarker(
                fault_id=fault.id,
                connection_id=connection_id,
                bus_group=conn.bus_group,
                position=fault.position,
                label=f"FAULT {severity.value.upper()}",
            )

        self.isolations[fault.id] = self.isolate_fault(fault)

        if not persistent:
            self._clear_timers[fault.id] = self.clock.call_later(
                self.config.protection.transient_clear_delay_s,
                lambda: self.clear_fault(fault.id),
                name=f"{fault.id}-autoclear",
            )

        return fault.id

    def clear_fault(self, fault_id: str) -> bool:
        """Clear a fault, remove its marker and stop its auto-reclose cycles"""
        fault = self.faults.get(fault_id)
        if fault is None:
            raise KeyError(f"Unknown fault: {fault_id}")
        if not fault.active:
            return False

        fault.status = FaultStatus.CLEARED
        self.markers.pop(fault_id, None)

        timer = self._clear_timers.pop(fault_id, None)
        if timer is not None:
            timer.cancel()

        for key in [k for k in self._dar if k[0] == fault_id]:
            self._dar.pop(key).cancel()

        self.events.append(EventCategory.INFO, EventType.FAULT_CLEARED, f"FAULT CLEARED {fault_id}",
                           fault_id=fault_id)
        return True

    def is_active(self, fault_id: str) -> bool:
        fault = self.faults.get(fault_id)
        return fault is not None and fault.active

    def active_faults(self) -> List[Fault]:
        return [f for f in self.faults.values() if f.active]

    def active_faults_on_bus_group(self, bus_group: str) -> List[Fault]:
        """Active persistent faults on a busbar"""
        return [f for f in self.active_faults() if f.persistent and f.bus_group == bus_group]

    def fault_blocked_devices(self) -> Set[str]:
        """Devices touched by an active persistent fault"""
        blocked = set()
        for fault in self.active_faults():
            if fault.persistent:
                blocked.update(fault.endpoints)
        return blocked

    # ========================= Isolation =========================

    def _blocks_search(self, device: Device) -> bool:
        if device.kind in (DeviceKind.CIRCUIT_BREAKER, DeviceKind.DISCONNECTOR):
            return device.state is not SwitchState.CLOSED
        if device.kind is DeviceKind.EARTH_SWITCH:
            return device.state is SwitchState.CLOSED
        if device.kind in (DeviceKind.SOURCE, DeviceKind.LOAD, DeviceKind.JUNCTION,
                           DeviceKind.TRANSFORMER, DeviceKind.INSTRUMENT_TRANSFORMER):
            return False
        raise ValueError(f"Unhandled device kind: {device.kind}")

    def find_trip_set(self, start_ids: Tuple[str, ...]) -> Tuple[List[str], List[str]]:
        """
        Breadth-first search for the nearest closed breakers

        Returns:
            (trip set in discovery order, all devices in visit order)
        """
        trip_set: List[str] = []
        order: List[str] = []
        seen: Set[str] = set()
        queue = deque(start_ids)

        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            order.append(current)

            device = self.network.device(current)
            if device.kind is DeviceKind.CIRCUIT_BREAKER and device.state is SwitchState.CLOSED:
                trip_set.append(current)
                continue
            if self._blocks_search(device):
                continue

            for other_id, _ in self.network.neighbours(current):
                if other_id not in seen:
                    queue.append(other_id)

        return trip_set, order

    def isolate_fault(self, fault: Fault) -> IsolationResult:
        """Trip the breakers feeding a fault, or fault a transformer when none exists"""
        trip_set, order = self.find_trip_set(fault.endpoints)
        result = IsolationResult(fault_id=fault.id, trip_set=list(trip_set), searched=order)
        logger.info(f"{fault.id}: trip set {trip_set or 'empty'}")

        for cb_id in trip_set:
            breaker = self.network.device(cb_id)

            if breaker.health is Health.DESTROYED:
                result.destroyed.append(cb_id)
                continue

            if fault.severity is FaultSeverity.EXTREME and \
                    self.rng.random() < self.config.protection.destruction_probability:
                self.network.update_device(cb_id, health=Health.DESTROYED)
                result.destroyed.append(cb_id)
                self.events.append(EventCategory.ERROR, EventType.BREAKER_DESTROYED,
                                   f"CB FAIL (DESTROYED) {cb_id} under EXTREME fault",
                                   device_id=cb_id, device_kind=breaker.kind.value, fault_id=fault.id)
                continue

            ticket = self.scheduler.schedule_command(cb_id, DeviceKind.CIRCUIT_BREAKER, SwitchState.OPEN)
            if not ticket.accepted:
                result.rejected.append(cb_id)
                continue
            result.tripped.append(cb_id)

            prot = breaker.protection
            if prot is not None and prot.dar_enabled and not prot.lockout:
                self._start_dar(fault, cb_id)

        if not trip_set:
            transformer_id = next(
                (dev_id for dev_id in order
                 if self.network.device(dev_id).kind is DeviceKind.TRANSFORMER),
                None,
            )
            if transformer_id is not None:
                self.network.update_device(transformer_id, health=Health.FAILED)
                result.faulted_transformer = transformer_id
                self.events.append(EventCategory.ERROR, EventType.TRANSFORMER_FAULTED,
                                   f"TX FAULTED {transformer_id} (no CB isolation found)",
                                   device_id=transformer_id, device_kind=DeviceKind.TRANSFORMER.value,
                                   fault_id=fault.id)
            else:
                logger.warning(f"{fault.id}: no breaker or transformer reachable, fault left unisolated")

        return result

    # ========================= Auto-reclose =========================

    def _dar_timing(self, prot: ProtectionSettings) -> Tuple[int, float]:
        """Attempts and dead time of a breaker, falling back to the configured defaults"""
        defaults = self.config.protection
        attempts = prot.attempts if prot.attempts >= 1 else defaults.default_attempts
        dead_time_s = prot.dead_time_s if prot.dead_time_s > 0 else defaults.default_dead_time_s
        return attempts, dead_time_s

    def _start_dar(self, fault: Fault, cb_id: str):
        attempts, dead_time_s = self._dar_timing(self.network.device(cb_id).protection)
        seq = DarSequence(
            fault_id=fault.id,
            breaker_id=cb_id,
            attempts=attempts,
            dead_time_s=dead_time_s,
        )
        previous = self._dar.pop((fault.id, cb_id), None)
        if previous is not None:
            previous.cancel()
        self._dar[(fault.id, cb_id)] = seq
        seq.timer = self.clock.call_later(seq.dead_time_s, lambda: self._reclose(seq),
                                          name=f"{fault.id}-{cb_id}-dead")

    def _finish(self, seq: DarSequence):
        seq.finished = True
        seq.timer = None
        self._dar.pop((seq.fault_id, seq.breaker_id), None)

    def _reclose(self, seq: DarSequence):
        if seq.finished:
            return
        if not self.is_active(seq.fault_id):
            self._finish(seq)
            return

        seq.attempts_made += 1
        self.events.append(EventCategory.WARN, EventType.DAR_RECLOSE,
                           f"DAR RECLOSE attempt {seq.attempts_made}/{seq.attempts} on {seq.breaker_id}",
                           device_id=seq.breaker_id, device_kind=DeviceKind.CIRCUIT_BREAKER.value,
                           target_state=SwitchState.CLOSED.value, fault_id=seq.fault_id)
        self.scheduler.schedule_command(seq.breaker_id, DeviceKind.CIRCUIT_BREAKER, SwitchState.CLOSED)

        seq.timer = self.clock.call_later(self.config.protection.settle_time_s,
                                          lambda: self._after_reclose(seq),
                                          name=f"{seq.fault_id}-{seq.breaker_id}-settle")

    def _after_reclose(self, seq: DarSequence):
        if seq.finished:
            return
        if not self.is_active(seq.fault_id):
            logger.success(f"DAR on {seq.breaker_id} restored supply after {seq.attempts_made} attempt(s)")
            self._finish(seq)
            return

        self.scheduler.schedule_command(seq.breaker_id, DeviceKind.CIRCUIT_BREAKER, SwitchState.OPEN)

        if seq.attempts_made < seq.attempts:
            seq.timer = self.clock.call_later(seq.dead_time_s, lambda: self._reclose(seq),
                                              name=f"{seq.fault_id}-{seq.breaker_id}-dead")
            return

        self._auto_isolate(seq)
        self._set_protection(seq.breaker_id, lockout=True)
        seq.locked_out = True
        self.events.append(EventCategory.ERROR, EventType.DAR_LOCKOUT, f"DAR LOCKOUT on {seq.breaker_id}",
                           device_id=seq.breaker_id, device_kind=DeviceKind.CIRCUIT_BREAKER.value,
                           fault_id=seq.fault_id)
        self._finish(seq)

    def _auto_isolate(self, seq: DarSequence):
        """Open closed auto-isolate disconnectors adjacent to a locked-out breaker"""
        for other_id, _ in self.network.neighbours(seq.breaker_id):
            other = self.network.device(other_id)
            if other.kind is not DeviceKind.DISCONNECTOR or other.state is not SwitchState.CLOSED:
                continue
            if other.protection is None or not other.protection.auto_isolate:
                continue
            self.events.append(EventCategory.WARN, EventType.AUTO_ISOLATE,
                               f"AUTO ISOLATE {other_id} after lockout of {seq.breaker_id}",
                               device_id=other_id, device_kind=other.kind.value,
                               target_state=SwitchState.OPEN.value, fault_id=seq.fault_id)
            self.scheduler.schedule_command(other_id, DeviceKind.DISCONNECTOR, SwitchState.OPEN)

    def dar_sequences(self) -> List[DarSequence]:
        return list(self._dar.values())

    # ========================= Device conditions =========================

    def reset_condition(self, device_id: str):
        """
        Clear failed/destroyed health, lockout and motion on a device

        Also drops its pending command and every auto-reclose cycle that
        references it.
        """
        device = self.network.device(device_id)

        for key in [k for k in self._dar if k[1] == device_id]:
            self._dar.pop(key).cancel()
        self.scheduler.cancel_pending(device_id)

        changes: Dict[str, Any] = {"moving": False}
        if device.health is not Health.OK:
            changes["health"] = Health.OK
        if device.protection is not None and device.protection.lockout:
            changes["protection"] = replace(device.protection, lockout=False)
        self.network.update_device(device_id, **changes)

        self.events.append(EventCategory.INFO, EventType.RESET, f"RESET {device_id}",
                           device_id=device_id, device_kind=device.kind.value)

    def configure_protection(self, device_id: str, **settings: Any):
        """Change protection settings of a breaker or disconnector"""
        device = self.network.device(device_id)
        if device.protection is None:
            raise ValueError(f"{device_id} ({device.kind.short_name}) has no protection settings")
        self._set_protection(device_id, **settings)
        self.events.append(EventCategory.INFO, EventType.PROTECTION_CHANGED,
                           f"Protection settings changed on {device_id}: {settings}",
                           device_id=device_id, device_kind=device.kind.value)

    def toggle_dar(self, cb_id: str) -> bool:
        """Flip DAR on a breaker; clears lockout. Returns the new setting."""
        device = self.network.device(cb_id)
        if device.kind is not DeviceKind.CIRCUIT_BREAKER:
            raise ValueError(f"DAR is only available on breakers, {cb_id} is {device.kind.short_name}")
        enabled = not device.protection.dar_enabled
        attempts, dead_time_s = self._dar_timing(device.protection)
        self._set_protection(cb_id, dar_enabled=enabled, attempts=attempts, dead_time_s=dead_time_s, lockout=False)
        self.events.append(EventCategory.INFO, EventType.PROTECTION_CHANGED, f"DAR toggled on {cb_id}",
                           device_id=cb_id, device_kind=device.kind.value)
        return enabled

    def toggle_auto_isolate(self, ds_id: str) -> bool:
        """Flip auto-isolation on a disconnector. Returns the new setting."""
        device = self.network.device(ds_id)
        if device.kind is not DeviceKind.DISCONNECTOR:
            raise ValueError(f"Auto isolation is only available on disconnectors, {ds_id} is {device.kind.short_name}")
        enabled = not device.protection.auto_isolate
        self._set_protection(ds_id, auto_isolate=enabled)
        self.events.append(EventCategory.INFO, EventType.PROTECTION_CHANGED, f"Auto isolation toggled on {ds_id}",
                           device_id=ds_id, device_kind=device.kind.value)
        return enabled

    def _set_protection(self, device_id: str, **settings: Any):
        device = self.network.device(device_id)
        self.network.update_device(device_id, protection=replace(device.protection, **settings))
