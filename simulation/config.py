"""
Simulation Configuration

Timing, probability and threshold parameters for one simulation instance.
Defaults reproduce the trainer's stock behaviour; a JSON file may override
any subset of them.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from dataclasses_json import dataclass_json
from loguru import logger


@dataclass_json
@dataclass
class CommandTiming:
    """Mechanical timing of one device kind (seconds)"""
    completion_min_s: float
    completion_max_s: float
    timeout_s: float
    failure_probability: float


def _default_timings() -> Dict[str, CommandTiming]:
    return {
        'cb': CommandTiming(completion_min_s=0.06, completion_max_s=0.12,
                            timeout_s=0.5, failure_probability=0.01),
        'ds': CommandTiming(completion_min_s=2.0, completion_max_s=3.0,
                            timeout_s=6.0, failure_probability=0.03),
        'es': CommandTiming(completion_min_s=2.0, completion_max_s=3.0,
                            timeout_s=6.0, failure_probability=0.03),
    }


@dataclass_json
@dataclass
class ProtectionConfig:
    """Fault and auto-reclose constants"""
    destruction_probability: float = 0.3
    settle_time_s: float = 0.25
    transient_clear_delay_s: float = 0.05
    default_dead_time_s: float = 0.8
    default_attempts: int = 1


@dataclass_json
@dataclass
class PowerFlowConfig:
    """Defaults and thresholds of the power flow estimate"""
    default_rating_mva: float = 100.0
    overload_pct: float = 100.0
    source_p_mw: float = 180.0
    source_q_mvar: float = 20.0
    load_p_mw: float = 120.0
    load_q_mvar: float = 45.0
    low_voltage_mvar: float = 30.0
    high_voltage_mvar: float = -30.0


@dataclass_json
@dataclass
class SimulationConfig:
    """Complete configuration of a simulation instance"""
    timings: Dict[str, CommandTiming] = field(default_factory=_default_timings)
    protection: ProtectionConfig = field(default_factory=ProtectionConfig)
    power_flow: PowerFlowConfig = field(default_factory=PowerFlowConfig)
    event_log_capacity: int = 500
    seed: Optional[int] = None
    realtime_factor: Optional[float] = None  # wall-clock seconds per simulated second

    def timing_for(self, kind_value: str) -> CommandTiming:
        try:
            return self.timings[kind_value]
        except KeyError:
            raise KeyError(f"No command timing configured for device kind '{kind_value}'") from None


def default_config() -> SimulationConfig:
    return SimulationConfig()


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def config_from_dict(overrides: Dict[str, Any]) -> SimulationConfig:
    """Merge a (possibly partial) nested dict onto the defaults"""
    merged = _deep_merge(default_config().to_dict(), overrides)
    return SimulationConfig.from_dict(merged)


def load_config(path: Union[str, Path]) -> SimulationConfig:
    """Load configuration overrides from a JSON file"""
    path = Path(path)
    with open(path, 'r') as f:
        overrides = json.load(f)
    logger.info(f"Configuration loaded from {path}")
    return config_from_dict(overrides)
