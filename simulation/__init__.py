"""
Switchgear Simulation Package

Conduction, grounding, interlocking, command scheduling, protection and
power flow estimation for a substation mimic.
"""

from .clock import SimulationClock, TimerHandle
from .conduction import ConductionResult, compute_conduction, is_conducting
from .config import SimulationConfig, default_config, load_config
from .events import EventCategory, EventLog, EventType, SimulationEvent
from .grounding import GroundingResult, compute_grounding, find_conflicts
from .interlocks import InterlockResult, apply_sequence, evaluate_interlock
from .power_flow import BusVoltageState, PowerFlowEstimate, estimate_power_flow
from .protection import Fault, FaultSeverity, FaultStatus, ProtectionEngine
from .scheduler import CommandOutcome, CommandScheduler, CommandTicket
from .simulator import SwitchgearSimulation

__version__ = "1.0.0"
__all__ = [
    "SimulationClock",
    "TimerHandle",
    "ConductionResult",
    "compute_conduction",
    "is_conducting",
    "SimulationConfig",
    "default_config",
    "load_config",
    "EventCategory",
    "EventLog",
    "EventType",
    "SimulationEvent",
    "GroundingResult",
    "compute_grounding",
    "find_conflicts",
    "InterlockResult",
    "apply_sequence",
    "evaluate_interlock",
    "BusVoltageState",
    "PowerFlowEstimate",
    "estimate_power_flow",
    "Fault",
    "FaultSeverity",
    "FaultStatus",
    "ProtectionEngine",
    "CommandOutcome",
    "CommandScheduler",
    "CommandTicket",
    "SwitchgearSimulation",
]
