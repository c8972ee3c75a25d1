"""
Decision Condition Evaluation.

Conditions are deliberately tiny: after variable resolution the text must
be one of

    "left" == "right"
    left == "right"

and is true when both literals are identical. Anything else is an
unsupported condition, which evaluates to false.
"""

from typing import Any, List, Mapping, Optional
from dataclasses import dataclass, field
import logging
import re

from flowrunner.engine.variables import resolve


logger = logging.getLogger(__name__)

_QUOTED = re.compile(r'^"([^"]*)" == "([^"]*)"$')
_BARE = re.compile(r'^([^=\s]+) == "([^"]*)"$')


@dataclass
class ConditionResult:
    """Outcome of evaluating one condition."""
    condition: str
    resolved: str
    value: bool
    supported: bool = True
    unresolved: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.value


def _compare(text: str) -> Optional[bool]:
    for pattern in (_QUOTED, _BARE):
        match = pattern.match(text)
        if match:
            return match.group(1) == match.group(2)
    return None


def evaluate(condition: str, outputs: Mapping[str, Any]) -> ConditionResult:
    """Resolve variables in a condition and evaluate it. Never raises."""
    resolution = resolve(condition.strip(), outputs)
    outcome = _compare(resolution.text)
    logger.debug(f"Condition {condition!r} -> {resolution.text!r} -> {outcome}")

    return ConditionResult(
        condition=condition,
        resolved=resolution.text,
        value=bool(outcome),
        supported=outcome is not None,
        unresolved=resolution.unresolved,
    )
