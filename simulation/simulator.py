"""
Switchgear Simulation

Facade owning one network together with its clock, event log, command
scheduler and protection engine. Energization and grounding are recomputed
synchronously on every device change, so any reader sees a state that is
consistent with the latest committed switch position.
"""

import random
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from loguru import logger

from network.components import Connection, Device, DeviceKind, InterlockRule, SwitchState
from network.project import ProjectDocument, load_project, save_project
from network.topology import Network
from .clock import SimulationClock
from .conduction import ConductionResult, compute_conduction
from .config import SimulationConfig, default_config
from .events import EventListener, EventLog
from .grounding import GroundingResult, compute_grounding, find_conflicts
from .interlocks import InterlockResult, SequenceResult, apply_sequence, evaluate_interlock
from .power_flow import PowerFlowEstimate, estimate_power_flow
from .protection import FaultSeverity, ProtectionEngine
from .scheduler import CommandScheduler, CommandTicket


class SwitchgearSimulation:
    """
    One simulation instance of a substation mimic

    Args:
        network: Device/connection graph (owned by the simulation from now on)
        rules: Interlock rules in evaluation order
        config: Timing, probability and threshold parameters
        rng: Randomness source for jitter, failure and destruction draws
    """

    def __init__(self, network: Network, rules: Optional[Iterable[InterlockRule]] = None,
                 config: Optional[SimulationConfig] = None, rng: Optional[random.Random] = None):
        self.config = config or default_config()
        self.network = network
        self.rules: List[InterlockRule] = list(rules or [])
        self.rng = rng or random.Random(self.config.seed)

        self.clock = SimulationClock(self.config.realtime_factor)
        self.events = EventLog(self.config.event_log_capacity, clock=lambda: self.clock.now)
        self.scheduler = CommandScheduler(self.network, self.clock, self.events, self.config,
                                          rules=lambda: self.rules, rng=self.rng)
        self.protection = ProtectionEngine(self.network, self.scheduler, self.clock, self.events,
                                           self.config, rng=self.rng)

        self._conduction = ConductionResult()
        self._grounding = GroundingResult()
        self.network.subscribe(self._on_device_changed)
        self.recompute()

        logger.info(f"Simulation ready: {self.network.get_summary()}")

    @classmethod
    def from_components(cls, devices: Iterable[Device], connections: Iterable[Connection],
                        rules: Optional[Iterable[InterlockRule]] = None,
                        config: Optional[SimulationConfig] = None,
                        rng: Optional[random.Random] = None) -> 'SwitchgearSimulation':
        return cls(Network(devices, connections), rules, config, rng)

    @classmethod
    def from_project(cls, path: Union[str, Path], config: Optional[SimulationConfig] = None,
                     rng: Optional[random.Random] = None) -> 'SwitchgearSimulation':
        network, rules = load_project(path).to_network()
        return cls(network, rules, config, rng)

    def to_project(self, name: Optional[str] = None) -> ProjectDocument:
        return ProjectDocument.from_network(self.network, self.rules, name=name)

    def save_project(self, path: Union[str, Path], name: Optional[str] = None) -> Path:
        return save_project(self.to_project(name), path)

    # ========================= Live state =========================

    def _on_device_changed(self, device: Device, changes: Dict[str, Any]):
        if "state" in changes or "source_energized" in changes:
            self.recompute()

    def recompute(self):
        """Refresh cached energization and grounding"""
        devices = self.network.device_list()
        connections = self.network.connection_list()
        self._conduction = compute_conduction(devices, connections)
        self._grounding = compute_grounding(devices, connections)
        conflicts = find_conflicts(self._conduction, self._grounding)
        if conflicts:
            logger.warning(f"Energized and grounded at once: {sorted(conflicts)}")

    @property
    def conduction(self) -> ConductionResult:
        return self._conduction

    @property
    def grounding(self) -> GroundingResult:
        return self._grounding

    def conflicts(self) -> Set[str]:
        return find_conflicts(self._conduction, self._grounding)

    # ========================= Read-side engines =========================

    def compute_conduction(self) -> ConductionResult:
        return compute_conduction(self.network.device_list(), self.network.connection_list())

    def compute_grounding(self) -> GroundingResult:
        return compute_grounding(self.network.device_list(), self.network.connection_list())

    def evaluate_interlock(self, device_id: str, target_state: SwitchState) -> InterlockResult:
        return evaluate_interlock(device_id, target_state, self.network.device_list(), self.rules)

    def validate_sequence(self, actions: List[Tuple[str, SwitchState]]) -> SequenceResult:
        return apply_sequence(actions, self.network.device_list(), self.rules)

    def estimate_power_flow(self) -> PowerFlowEstimate:
        return estimate_power_flow(self.network.device_list(), self.network.connection_list(),
                                   self.config.power_flow)

    # ========================= Commands & faults =========================

    def schedule_command(self, device_id: str, kind: Optional[DeviceKind],
                         target_state: SwitchState) -> CommandTicket:
        return self.scheduler.schedule_command(device_id, kind, target_state)

    def toggle(self, device_id: str) -> CommandTicket:
        """Command a switch to the opposite of its recorded position"""
        device = self.network.device(device_id)
        current = device.state or SwitchState.OPEN
        return self.schedule_command(device_id, device.kind, current.opposite())

    def inject_fault(self, connection_id: str, position: Tuple[float, float] = (0.0, 0.0),
                     severity: Union[FaultSeverity, str] = FaultSeverity.NORMAL,
                     persistent: bool = False) -> str:
        return self.protection.inject_fault(connection_id, position, severity, persistent)

    def clear_fault(self, fault_id: str) -> bool:
        return self.protection.clear_fault(fault_id)

    def reset_condition(self, device_id: str):
        self.protection.reset_condition(device_id)

    def set_source(self, device_id: str, energized: bool):
        """Switch a source on or off"""
        device = self.network.device(device_id)
        if device.kind is not DeviceKind.SOURCE:
            raise ValueError(f"{device_id} is not a source")
        self.network.update_device(device_id, source_energized=energized)

    # ========================= Time & notifications =========================

    def advance(self, seconds: float):
        self.clock.advance(seconds)

    def run_until_idle(self, limit_s: Optional[float] = None):
        self.clock.run_until_idle(limit_s)

    def subscribe(self, listener: EventListener):
        self.events.subscribe(listener)

    def get_summary(self) -> Dict[str, Any]:
        return {
            **self.network.get_summary(),
            "sim_time_s": self.clock.now,
            "energized_devices": len(self._conduction.energized_devices),
            "grounded_devices": len(self._grounding.grounded_devices),
            "conflicts": len(self.conflicts()),
            "pending_commands": len(self.scheduler.pending_devices()),
            "active_faults": len(self.protection.active_faults()),
            "events": len(self.events),
        }
