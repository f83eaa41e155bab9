"""Status transitions for a single step.

The same rules apply to a step inside a workflow and to a template step as
seen through a composite session; callers supply the facts the rules need
(whether the predecessor is completed and whether proof is attached).
"""
from __future__ import annotations

from typing import Any, Dict, FrozenSet

from django.db import models

from .exceptions import InvalidTransition


class StepStatus(models.TextChoices):
    LOCKED = "locked", "Locked"
    ACTIVE = "active", "Active"
    COMPLETED = "completed", "Completed"


TRANSITIONS: Dict[str, FrozenSet[str]] = {
    StepStatus.LOCKED: frozenset({StepStatus.ACTIVE}),
    StepStatus.ACTIVE: frozenset({StepStatus.COMPLETED}),
    StepStatus.COMPLETED: frozenset(),
}

PROOF_FIELDS = (
    "proof_title",
    "proof_description",
    "proof_content",
    "proof_file_path",
    "proof_file_name",
    "proof_mime_type",
    "proof_file_size",
)


def has_proof(record: Any) -> bool:
    """Return whether proof content or a file is attached and stamped."""

    attached = bool(record.proof_content) or bool(record.proof_file_path)
    return attached and record.proof_submitted_at is not None


def proof_gate_open(
    *, requires_approval: bool, proof_required: bool, proof_attached: bool, approved: bool = False
) -> bool:
    """An approved review satisfies the gate the same way attached proof does."""

    return not requires_approval or not proof_required or proof_attached or approved


def check_transition(
    current: str,
    target: str,
    *,
    predecessor_completed: bool,
    requires_approval: bool = False,
    proof_required: bool = False,
    proof_attached: bool = False,
    approved: bool = False,
) -> None:
    """Raise :class:`InvalidTransition` unless ``current -> target`` is legal."""

    if current not in TRANSITIONS or target not in TRANSITIONS:
        raise InvalidTransition(f"Unknown step status: {current!r} -> {target!r}.")

    if target not in TRANSITIONS[current]:
        raise InvalidTransition(f"Cannot move a step from {current} to {target}.")

    if target == StepStatus.ACTIVE and not predecessor_completed:
        raise InvalidTransition("The preceding step must be completed first.")

    if target == StepStatus.COMPLETED and not proof_gate_open(
        requires_approval=requires_approval,
        proof_required=proof_required,
        proof_attached=proof_attached,
        approved=approved,
    ):
        raise InvalidTransition("Proof or an approved review is required before completion.")


def initial_status(step_number: int, current_step: int) -> str:
    """Status a workflow step starts with given the workflow's position."""

    if step_number < current_step:
        return StepStatus.COMPLETED
    if step_number == current_step:
        return StepStatus.ACTIVE
    return StepStatus.LOCKED
