"""Per-session step state derived from shared template steps.

A session stores override rows only for the steps it has touched. Every other
step's state is inferred from its position: the first step, or a step whose
predecessor is completed, is active; anything further along is locked.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from workflows.models import Step
from workflows.state_machine import PROOF_FIELDS, StepStatus

from .models import CompositeWorkflowItem, CompositeWorkflowSessionStep

Entry = Tuple[CompositeWorkflowItem, Step]


@dataclass
class EffectiveStep:
    item: CompositeWorkflowItem
    step: Step
    status: str
    override: Optional[CompositeWorkflowSessionStep] = None

    @property
    def is_completed(self) -> bool:
        return self.status == StepStatus.COMPLETED

    @property
    def proof(self) -> Dict[str, object]:
        fields = PROOF_FIELDS + ("proof_submitted_at", "proof_submitted_by")
        source = self.override if self.override is not None else CompositeWorkflowSessionStep()
        return {field: getattr(source, field) for field in fields}

    @property
    def completed_at(self):
        return self.override.completed_at if self.override is not None else None


def order_entries(items: Iterable[CompositeWorkflowItem]) -> List[Entry]:
    ordered = sorted(items, key=lambda item: (item.order_index, item.pk))
    return [(item, item.step) for item in ordered]


def default_status(position: int, previous: Optional[str], *, frontier_seen: bool = False) -> str:
    """Status of an untouched step.

    Only the first unresolved step can be active. Once the session has an
    active step, whether stored or inferred, every other untouched step is
    locked.
    """

    if frontier_seen:
        return StepStatus.LOCKED
    if position == 0 or previous == StepStatus.COMPLETED:
        return StepStatus.ACTIVE
    return StepStatus.LOCKED


def resolve_session_steps(
    entries: Sequence[Entry],
    overrides: Mapping[int, CompositeWorkflowSessionStep],
) -> List[EffectiveStep]:
    """Resolve the effective status of each entry for one session."""

    resolved: List[EffectiveStep] = []
    previous: Optional[str] = None
    frontier_seen = any(
        overrides[step.pk].status == StepStatus.ACTIVE for _, step in entries if step.pk in overrides
    )
    for position, (item, step) in enumerate(entries):
        override = overrides.get(step.pk)
        if override is not None:
            status = override.status
        else:
            status = default_status(position, previous, frontier_seen=frontier_seen)
        if status == StepStatus.ACTIVE:
            frontier_seen = True
        resolved.append(EffectiveStep(item=item, step=step, status=status, override=override))
        previous = status
    return resolved


def find(resolved: Sequence[EffectiveStep], step_id: int) -> Tuple[Optional[EffectiveStep], Optional[EffectiveStep]]:
    """Return the effective entry for ``step_id`` and the one before it."""

    for index, entry in enumerate(resolved):
        if entry.step.pk == step_id:
            return entry, resolved[index - 1] if index > 0 else None
    return None, None
