"""
Interlock Evaluator

Pure rule check gating a proposed switch operation. Rules are evaluated in
insertion order and the first blocking rule wins.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from network.components import Device, InterlockRule, RuleType, SwitchState


@dataclass
class InterlockResult:
    """Outcome of an interlock check"""
    allowed: bool
    reason: Optional[str] = None
    blocked_by: Optional[InterlockRule] = None

    def __bool__(self):
        return self.allowed


@dataclass
class SequenceResult:
    """Outcome of validating an ordered list of operations"""
    ok: bool
    states: Dict[str, Optional[SwitchState]]
    failed_at: Optional[int] = None
    validation: Optional[InterlockResult] = None


ALLOWED = InterlockResult(allowed=True)


def _check_rule(rule: InterlockRule, device_id: str, target: SwitchState,
                states: Dict[str, Optional[SwitchState]]) -> Optional[str]:
    """Block reason for one rule, or None when the rule does not block"""
    if rule.rule_type is RuleType.MUTEX:
        if target is not SwitchState.CLOSED or device_id not in rule.members:
            return None
        for other_id in rule.members:
            if other_id != device_id and states.get(other_id) is SwitchState.CLOSED:
                return (f"Interlock: {device_id} cannot close because {other_id} "
                        f"is already closed (mutual exclusion).")
        return None

    if rule.action_device_id != device_id or rule.action_state is not target:
        return None

    current = states.get(rule.condition_device_id)
    cond = rule.condition_state.value if rule.condition_state else "?"

    if rule.rule_type is RuleType.FORBIDS:
        if current is rule.condition_state:
            return f"Interlock: {device_id} cannot {target.value} while {rule.condition_device_id} is {cond}."
        return None
    if rule.rule_type is RuleType.REQUIRES:
        if current is not rule.condition_state:
            return f"Interlock: {device_id} cannot {target.value} unless {rule.condition_device_id} is {cond}."
        return None
    raise ValueError(f"Unhandled rule type: {rule.rule_type}")


def _evaluate(device_id: str, target: SwitchState,
              states: Dict[str, Optional[SwitchState]],
              rules: Iterable[InterlockRule]) -> InterlockResult:
    for rule in rules:
        reason = _check_rule(rule, device_id, target, states)
        if reason:
            return InterlockResult(allowed=False, reason=reason, blocked_by=rule)
    return ALLOWED


def evaluate_interlock(device_id: str, target_state: SwitchState,
                       devices: Iterable[Device], rules: Iterable[InterlockRule]) -> InterlockResult:
    """
    Check whether moving a device to ``target_state`` is allowed

    Args:
        device_id: Acting device
        target_state: Proposed state
        devices: Current devices (read only)
        rules: Interlock rules in insertion order

    Returns:
        Allowed, or the first blocking rule with a human-readable reason
    """
    states = {dev.id: dev.state for dev in devices}
    return _evaluate(device_id, target_state, states, rules)


def apply_sequence(actions: Sequence[Tuple[str, SwitchState]], devices: Iterable[Device],
                   rules: List[InterlockRule]) -> SequenceResult:
    """
    Validate a switching sequence step by step on a working copy of states

    Each accepted step updates the working states so later steps are checked
    against the positions earlier steps produce. Devices are not modified.
    """
    states = {dev.id: dev.state for dev in devices}
    for index, (device_id, target) in enumerate(actions):
        validation = _evaluate(device_id, target, states, rules)
        if not validation.allowed:
            return SequenceResult(ok=False, states=states, failed_at=index, validation=validation)
        states[device_id] = target
    return SequenceResult(ok=True, states=states)
