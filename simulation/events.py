"""
Simulation Event Log

In-memory, newest-first log of everything the engines report: command
acknowledgements and rejections, failures, timeouts, alarms, protection
operations. Each entry is mirrored to loguru and pushed to subscribers.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

import pandas as pd
from loguru import logger


class EventCategory(Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    DEBUG = "debug"


class EventType(Enum):
    """What happened, for programmatic consumers"""
    COMMAND_ISSUED = "command_issued"
    COMMAND_REJECTED = "command_rejected"
    COMMAND_SUCCEEDED = "command_succeeded"
    COMMAND_FAILED = "command_failed"
    COMMAND_TIMEOUT = "command_timeout"
    FAULT_ALARM = "fault_alarm"
    FAULT_CLEARED = "fault_cleared"
    BREAKER_DESTROYED = "breaker_destroyed"
    TRANSFORMER_FAULTED = "transformer_faulted"
    DAR_RECLOSE = "dar_reclose"
    DAR_LOCKOUT = "dar_lockout"
    AUTO_ISOLATE = "auto_isolate"
    PROTECTION_CHANGED = "protection_changed"
    RESET = "reset"


_LOG_LEVELS = {
    EventCategory.INFO: "INFO",
    EventCategory.WARN: "WARNING",
    EventCategory.ERROR: "ERROR",
    EventCategory.DEBUG: "DEBUG",
}


@dataclass
class SimulationEvent:
    """Single event log entry"""
    category: EventCategory
    type: EventType
    message: str
    sim_time: float
    device_id: Optional[str] = None
    device_kind: Optional[str] = None
    target_state: Optional[str] = None
    fault_id: Optional[str] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    acknowledged: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'sim_time': self.sim_time,
            'category': self.category.value,
            'type': self.type.value,
            'message': self.message,
            'device_id': self.device_id,
            'device_kind': self.device_kind,
            'target_state': self.target_state,
            'fault_id': self.fault_id,
            'acknowledged': self.acknowledged,
        }


EventListener = Callable[[SimulationEvent], None]


class EventLog:
    """Bounded newest-first event log with subscribers"""

    def __init__(self, capacity: int = 500, clock: Optional[Callable[[], float]] = None):
        self.capacity = capacity
        self._clock = clock or (lambda: 0.0)
        self._events: List[SimulationEvent] = []
        self._listeners: List[EventListener] = []

    def subscribe(self, listener: EventListener):
        self._listeners.append(listener)

    def unsubscribe(self, listener: EventListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def append(self, category: EventCategory, event_type: EventType, message: str, **details: Any) -> SimulationEvent:
        event = SimulationEvent(
            category=category,
            type=event_type,
            message=message,
            sim_time=self._clock(),
            **details
        )
        self._events.insert(0, event)
        del self._events[self.capacity:]

        logger.log(_LOG_LEVELS[category], f"[t={event.sim_time:.3f}s] {message}")

        for listener in list(self._listeners):
            listener(event)
        return event

    def acknowledge(self, event_id: str) -> bool:
        for event in self._events:
            if event.id == event_id:
                event.acknowledged = True
                return True
        return False

    def events(self, categories: Optional[Iterable[EventCategory]] = None,
               include_acknowledged: bool = True) -> List[SimulationEvent]:
        """Newest-first events, optionally filtered"""
        wanted = set(categories) if categories is not None else None
        return [
            e for e in self._events
            if (wanted is None or e.category in wanted)
            and (include_acknowledged or not e.acknowledged)
        ]

    def of_type(self, event_type: EventType) -> List[SimulationEvent]:
        return [e for e in self._events if e.type is event_type]

    def clear(self):
        self._events.clear()

    def __len__(self):
        return len(self._events)

    def to_dataframe(self) -> pd.DataFrame:
        """Export the log oldest-first as a DataFrame"""
        columns = ['id', 'sim_time', 'category', 'type', 'message', 'device_id',
                   'device_kind', 'target_state', 'fault_id', 'acknowledged']
        rows = [e.to_dict() for e in reversed(self._events)]
        return pd.DataFrame(rows, columns=columns)
