"""
Switchgear Network Components

Device, connection and protection records for a substation mimic.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple
from dataclasses_json import dataclass_json


class NetworkValidationError(ValueError):
    """Raised when a device/connection graph breaks a structural invariant"""


class UnknownDeviceError(KeyError):
    """Raised when a device identifier is not part of the network"""


class UnknownConnectionError(KeyError):
    """Raised when a connection identifier is not part of the network"""


# ========================= Enumerations =========================

class DeviceKind(Enum):
    """Closed set of device kinds found on a switchgear mimic"""
    SOURCE = "source"
    LOAD = "load"  # load or substation interface
    DISCONNECTOR = "ds"
    CIRCUIT_BREAKER = "cb"
    EARTH_SWITCH = "es"
    JUNCTION = "junction"
    TRANSFORMER = "xfmr"
    INSTRUMENT_TRANSFORMER = "ct_vt"

    @property
    def short_name(self) -> str:
        return self.value.upper()


class SwitchState(Enum):
    OPEN = "open"
    CLOSED = "closed"

    def opposite(self) -> 'SwitchState':
        return SwitchState.CLOSED if self is SwitchState.OPEN else SwitchState.OPEN


class Health(Enum):
    OK = "ok"
    FAILED = "failed"
    DESTROYED = "destroyed"


class PowerRole(Enum):
    SOURCE = "source"
    LOAD = "load"
    NEUTRAL = "neutral"


class ConnectionKind(Enum):
    BUSBAR = "busbar"
    WIRE = "wire"


def is_switchable(kind: DeviceKind) -> bool:
    """True for kinds that carry an open/closed state"""
    if kind in (DeviceKind.CIRCUIT_BREAKER, DeviceKind.DISCONNECTOR, DeviceKind.EARTH_SWITCH):
        return True
    if kind in (DeviceKind.SOURCE, DeviceKind.LOAD, DeviceKind.JUNCTION,
                DeviceKind.TRANSFORMER, DeviceKind.INSTRUMENT_TRANSFORMER):
        return False
    raise ValueError(f"Unhandled device kind: {kind}")


def carries_protection(kind: DeviceKind) -> bool:
    """Protection settings exist on breakers and disconnectors only"""
    if kind in (DeviceKind.CIRCUIT_BREAKER, DeviceKind.DISCONNECTOR):
        return True
    if kind in (DeviceKind.SOURCE, DeviceKind.LOAD, DeviceKind.EARTH_SWITCH, DeviceKind.JUNCTION,
                DeviceKind.TRANSFORMER, DeviceKind.INSTRUMENT_TRANSFORMER):
        return False
    raise ValueError(f"Unhandled device kind: {kind}")


# ========================= Records =========================

@dataclass_json
@dataclass
class ProtectionSettings:
    """Dead auto-reclose and auto-isolation settings"""
    dar_enabled: bool = False
    attempts: int = 1
    dead_time_s: float = 0.8
    lockout: bool = False
    auto_isolate: bool = False


@dataclass_json
@dataclass
class PowerProfile:
    """Telemetry role of a device for the power flow estimate"""
    role: PowerRole = PowerRole.NEUTRAL
    p_mw: float = 0.0
    q_mvar: float = 0.0
    device_type: Optional[str] = None  # shunt_reactor, cap_bank


@dataclass_json
@dataclass
class Device:
    """Node of the switchgear graph"""
    id: str
    kind: DeviceKind
    label: str = ""
    state: Optional[SwitchState] = None
    source_energized: bool = False
    moving: bool = False
    protection: Optional[ProtectionSettings] = None
    health: Health = Health.OK
    isolation_tagged: bool = False
    power: Optional[PowerProfile] = None
    tags: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.label:
            self.label = self.id
        if is_switchable(self.kind) and self.state is None:
            self.state = SwitchState.OPEN
        if carries_protection(self.kind) and self.protection is None:
            self.protection = ProtectionSettings()

    @property
    def is_closed(self) -> bool:
        return self.state is SwitchState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state is not SwitchState.CLOSED


@dataclass_json
@dataclass
class Connection:
    """Edge between two devices, grouped into physical busbars"""
    id: str
    a: str
    b: str
    bus_group: str = ""
    rating_mva: Optional[float] = None
    kind: ConnectionKind = ConnectionKind.BUSBAR

    def __post_init__(self):
        if not self.bus_group:
            self.bus_group = f"bb-{self.id}"

    @property
    def endpoints(self) -> Tuple[str, str]:
        return self.a, self.b

    def other(self, device_id: str) -> str:
        return self.b if device_id == self.a else self.a


# ========================= Interlocking =========================

class RuleType(Enum):
    FORBIDS = "forbids"
    REQUIRES = "requires"
    MUTEX = "mutex"


@dataclass_json
@dataclass
class InterlockRule:
    """
    Declarative interlock

    ``forbids``: the action is blocked while the condition device is in the
    condition state. ``requires``: the action is blocked unless it is.
    ``mutex``: at most one of ``members`` may be closed.
    """
    action_device_id: str = ""
    action_state: Optional[SwitchState] = None
    condition_device_id: str = ""
    condition_state: Optional[SwitchState] = None
    rule_type: RuleType = RuleType.FORBIDS
    members: List[str] = field(default_factory=list)

    @classmethod
    def forbids(cls, device_id: str, to: SwitchState,
                while_device: str, while_state: SwitchState) -> 'InterlockRule':
        return cls(device_id, to, while_device, while_state, RuleType.FORBIDS)

    @classmethod
    def requires(cls, device_id: str, to: SwitchState,
                 unless_device: str, unless_state: SwitchState) -> 'InterlockRule':
        return cls(device_id, to, unless_device, unless_state, RuleType.REQUIRES)

    @classmethod
    def mutex(cls, members: List[str]) -> 'InterlockRule':
        if len(members) < 2:
            raise ValueError("A mutex rule needs at least two devices")
        return cls(rule_type=RuleType.MUTEX, members=list(members))
