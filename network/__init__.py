"""
Switchgear Network Package

Device/connection model of a substation mimic and its project format.
"""

from .components import (
    Connection,
    ConnectionKind,
    Device,
    DeviceKind,
    Health,
    InterlockRule,
    NetworkValidationError,
    PowerProfile,
    PowerRole,
    ProtectionSettings,
    RuleType,
    SwitchState,
    UnknownConnectionError,
    UnknownDeviceError,
    carries_protection,
    is_switchable,
)
from .topology import Network
from .samples import build_demo_substation
from .project import (
    ProjectDocument,
    ProjectFormatError,
    load_project,
    parse_project,
    save_project,
    serialize_project,
)

__version__ = "1.0.0"
__all__ = [
    "Connection",
    "ConnectionKind",
    "Device",
    "DeviceKind",
    "Health",
    "InterlockRule",
    "NetworkValidationError",
    "PowerProfile",
    "PowerRole",
    "ProtectionSettings",
    "RuleType",
    "SwitchState",
    "UnknownConnectionError",
    "UnknownDeviceError",
    "carries_protection",
    "is_switchable",
    "Network",
    "ProjectDocument",
    "ProjectFormatError",
    "load_project",
    "parse_project",
    "save_project",
    "serialize_project",
    "build_demo_substation",
]
