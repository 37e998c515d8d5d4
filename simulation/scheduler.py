"""
Command Scheduler

Per-device asynchronous execution of open/close commands with mechanical
timing, probabilistic failure and timeout. The scheduler is the single
write path for switch positions: at most one command is pending per device
and a second request while one is in flight is rejected, never queued.
"""

import random
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from loguru import logger

from network.components import Device, DeviceKind, Health, InterlockRule, SwitchState, is_switchable
from network.topology import Network
from .clock import SimulationClock, TimerHandle
from .config import SimulationConfig
from .events import EventCategory, EventLog, EventType
from .interlocks import evaluate_interlock


class CommandOutcome(Enum):
    ACCEPTED = "accepted"
    REJECTED_BUSY = "rejected_busy"
    REJECTED_INTERLOCK = "rejected_interlock"
    REJECTED_INVALID = "rejected_invalid"


@dataclass
class CommandTicket:
    """Immediate answer to a command request"""
    outcome: CommandOutcome
    device_id: str
    target_state: SwitchState
    kind: Optional[DeviceKind] = None
    command_id: Optional[str] = None
    reason: Optional[str] = None

    @property
    def accepted(self) -> bool:
        return self.outcome is CommandOutcome.ACCEPTED


@dataclass
class PendingCommand:
    """A command in flight; owns its two competing timers"""
    command_id: str
    device_id: str
    kind: DeviceKind
    target_state: SwitchState
    will_fail: bool
    issued_at: float
    completion_s: float
    timeout_s: float
    completion: Optional[TimerHandle] = None
    timeout: Optional[TimerHandle] = None

    def cancel_timers(self):
        for handle in (self.completion, self.timeout):
            if handle is not None:
                handle.cancel()


class CommandScheduler:
    """
    Mediates every switch position change of one simulation instance

    Completion and timeout are two cancellable timers; whichever fires first
    resolves the command and cancels the other.
    """

    def __init__(self, network: Network, clock: SimulationClock, events: EventLog,
                 config: SimulationConfig, rules: Callable[[], List[InterlockRule]],
                 rng: Optional[random.Random] = None):
        self.network = network
        self.clock = clock
        self.events = events
        self.config = config
        self._rules = rules
        self.rng = rng or random.Random(config.seed)
        self._pending: Dict[str, PendingCommand] = {}

    # ========================= Queries =========================

    def is_pending(self, device_id: str) -> bool:
        return device_id in self._pending

    def pending(self, device_id: str) -> Optional[PendingCommand]:
        return self._pending.get(device_id)

    def pending_devices(self) -> List[str]:
        return list(self._pending)

    # ========================= Scheduling =========================

    def schedule_command(self, device_id: str, kind: Optional[DeviceKind],
                         target_state: SwitchState) -> CommandTicket:
        """
        Request a device to move to ``target_state``

        Args:
            device_id: Device to operate
            kind: Expected device kind (None to take it from the network)
            target_state: Requested position

        Returns:
            Ticket telling whether the command was accepted; results arrive
            later as success/failure/timeout events
        """
        device = self.network.device(device_id)
        kind = kind or device.kind
        label = f"{kind.short_name} {device_id}"

        # 1. single pending command per device
        if device_id in self._pending:
            return self._reject(CommandOutcome.REJECTED_BUSY, device, kind, target_state,
                                f"CMD REJECTED {label} (already in progress)")

        invalid = self._invalid_reason(device, kind)
        if invalid:
            return self._reject(CommandOutcome.REJECTED_INVALID, device, kind, target_state,
                                f"CMD REJECTED {label} ({invalid})")

        # 2. interlocking
        verdict = evaluate_interlock(device_id, target_state, self.network.device_list(), self._rules())
        if not verdict.allowed:
            return self._reject(CommandOutcome.REJECTED_INTERLOCK, device, kind, target_state, verdict.reason)

        # 3. timing with mechanical jitter
        timing = self.config.timing_for(kind.value)
        completion_s = self.rng.uniform(timing.completion_min_s, timing.completion_max_s)
        timeout_s = timing.timeout_s

        command_id = f"cmd-{uuid.uuid4().hex[:6]}"
        self.events.append(EventCategory.INFO, EventType.COMMAND_ISSUED,
                           f"CMD {label} {target_state.value.upper()}",
                           device_id=device_id, device_kind=kind.value, target_state=target_state.value)

        # 4. visible motion before completion
        self.network.update_device(device_id, moving=True)

        # 5. one failure draw per command
        will_fail = self.rng.random() < timing.failure_probability

        command = PendingCommand(
            command_id=command_id,
            device_id=device_id,
            kind=kind,
            target_state=target_state,
            will_fail=will_fail,
            issued_at=self.clock.now,
            completion_s=completion_s,
            timeout_s=timeout_s,
        )
        self._pending[device_id] = command
        command.completion = self.clock.call_later(
            completion_s, lambda: self._complete(command), name=f"{command_id}-complete")
        command.timeout = self.clock.call_later(
            timeout_s, lambda: self._time_out(command), name=f"{command_id}-timeout")

        logger.debug(f"{command_id}: {label} -> {target_state.value} in {completion_s:.3f}s "
                     f"(timeout {timeout_s:.3f}s, fail={will_fail})")

        return CommandTicket(CommandOutcome.ACCEPTED, device_id, target_state, kind, command_id)

    def cancel_pending(self, device_id: str) -> bool:
        """Drop a pending command without resolving it; returns True if one existed"""
        command = self._pending.pop(device_id, None)
        if command is None:
            return False
        command.cancel_timers()
        logger.debug(f"{command.command_id}: cancelled for {device_id}")
        return True

    # ========================= Resolution =========================

    def _owns(self, command: PendingCommand) -> bool:
        current = self._pending.get(command.device_id)
        return current is not None and current.command_id == command.command_id

    def _complete(self, command: PendingCommand):
        if not self._owns(command):
            return
        command.timeout.cancel()
        del self._pending[command.device_id]

        label = f"{command.kind.short_name} {command.device_id}"
        target = command.target_state.value.upper()
        details = dict(device_id=command.device_id, device_kind=command.kind.value,
                       target_state=command.target_state.value)

        if command.will_fail:
            self.network.update_device(command.device_id, moving=False)
            self.events.append(EventCategory.ERROR, EventType.COMMAND_FAILED,
                               f"RPT {label} FAILED ({target})", **details)
            return

        self.network.update_device(command.device_id, state=command.target_state, moving=False)
        self.events.append(EventCategory.INFO, EventType.COMMAND_SUCCEEDED, f"RPT {label} {target}", **details)

    def _time_out(self, command: PendingCommand):
        if not self._owns(command):
            return
        command.completion.cancel()
        del self._pending[command.device_id]

        # final position unknown: keep the last recorded state
        self.network.update_device(command.device_id, moving=False)
        self.events.append(
            EventCategory.ERROR, EventType.COMMAND_TIMEOUT,
            f"TIMEOUT {command.kind.short_name} {command.device_id} "
            f"({command.target_state.value.upper()}) after {command.timeout_s * 1000:.0f} ms",
            device_id=command.device_id, device_kind=command.kind.value,
            target_state=command.target_state.value,
        )

    # ========================= Helpers =========================

    @staticmethod
    def _invalid_reason(device: Device, kind: DeviceKind) -> Optional[str]:
        if kind is not device.kind:
            return f"kind mismatch, device is {device.kind.short_name}"
        if not is_switchable(kind):
            return "device is not switchable"
        if device.health is Health.DESTROYED:
            return "device destroyed, reset required"
        return None

    def _reject(self, outcome: CommandOutcome, device: Device, kind: DeviceKind,
                target_state: SwitchState, message: str) -> CommandTicket:
        self.events.append(EventCategory.WARN, EventType.COMMAND_REJECTED, message,
                           device_id=device.id, device_kind=kind.value, target_state=target_state.value)
        return CommandTicket(outcome, device.id, target_state, kind, reason=message)
