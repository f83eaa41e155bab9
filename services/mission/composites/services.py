"""Composite workflows and the session resolver.

Template steps are shared by every session of a composite. Session progress
lives in sparse override rows keyed by ``(session, step)``, so completing a
step in one session never changes what another session sees.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from django.db import IntegrityError, transaction
from django.db.models import Max, Prefetch, QuerySet
from django.utils import timezone

from workflows.exceptions import (
    Conflict,
    InvalidTransition,
    NotFound,
    StepNotInComposite,
    ValidationError,
)
from workflows.models import Step
from workflows.state_machine import StepStatus, check_transition, has_proof

from .models import (
    CompositeWorkflow,
    CompositeWorkflowItem,
    CompositeWorkflowSession,
    CompositeWorkflowSessionStep,
)
from .resolver import EffectiveStep, find, order_entries, resolve_session_steps

logger = logging.getLogger(__name__)


@dataclass
class SessionView:
    session: CompositeWorkflowSession
    steps: List[EffectiveStep]

    @property
    def progress(self) -> Dict[str, int]:
        completed = sum(1 for entry in self.steps if entry.is_completed)
        return {"completed": completed, "total": len(self.steps)}


def _items_queryset() -> QuerySet:
    return CompositeWorkflowItem.objects.select_related("step", "step__source_workflow").order_by(
        "order_index", "id"
    )


def composite_queryset() -> QuerySet:
    return CompositeWorkflow.objects.prefetch_related(Prefetch("items", queryset=_items_queryset()))


def get_composite(composite_id: int) -> CompositeWorkflow:
    try:
        return composite_queryset().get(pk=composite_id)
    except CompositeWorkflow.DoesNotExist:
        raise NotFound(f"Composite workflow {composite_id} not found.") from None


def _source_step(step_id: int) -> Step:
    try:
        return Step.objects.get(pk=step_id)
    except Step.DoesNotExist:
        raise NotFound(f"Step {step_id} not found.") from None


def _clone_into(composite: CompositeWorkflow, source: Step, step_number: int, order_index: int) -> CompositeWorkflowItem:
    template = Step.objects.create(
        composite=composite,
        source_workflow_id=source.workflow_id or source.source_workflow_id,
        step_number=step_number,
        name=source.name,
        description=source.description,
        status=StepStatus.ACTIVE if order_index == 0 else StepStatus.LOCKED,
        requires_approval=source.requires_approval,
        proof_required=source.proof_required,
    )
    return CompositeWorkflowItem.objects.create(composite=composite, step=template, order_index=order_index)


def create_composite(
    *,
    name: str,
    description: str = "",
    owner_id: str = "",
    step_ids: Iterable[int] = (),
) -> CompositeWorkflow:
    """Bundle copies of ``step_ids`` into a new composite, in the given order."""

    step_ids = list(step_ids)
    with transaction.atomic():
        sources = [_source_step(step_id) for step_id in step_ids]
        composite = CompositeWorkflow.objects.create(name=name, description=description, owner_id=owner_id)
        for position, source in enumerate(sources):
            _clone_into(composite, source, step_number=position + 1, order_index=position)
    logger.info("Composite %s created with %s steps", composite.pk, len(step_ids))
    return get_composite(composite.pk)


def add_composite_step(composite_id: int, step_id: int, order_index: Optional[int] = None) -> CompositeWorkflowItem:
    with transaction.atomic():
        try:
            composite = CompositeWorkflow.objects.select_for_update().get(pk=composite_id)
        except CompositeWorkflow.DoesNotExist:
            raise NotFound(f"Composite workflow {composite_id} not found.") from None
        source = _source_step(step_id)
        if order_index is None:
            highest = composite.items.aggregate(highest=Max("order_index"))["highest"]
            order_index = 0 if highest is None else highest + 1
        elif composite.items.filter(order_index=order_index).exists():
            raise ValidationError(f"Order index {order_index} is already used in this composite.")
        top_number = composite.template_steps.aggregate(top=Max("step_number"))["top"] or 0
        try:
            with transaction.atomic():
                item = _clone_into(composite, source, step_number=top_number + 1, order_index=order_index)
        except IntegrityError:
            raise Conflict("The composite was changed concurrently.") from None
    logger.info("Step %s added to composite %s at %s", step_id, composite_id, order_index)
    return item


def copy_composite(
    composite_id: int,
    *,
    name: Optional[str] = None,
    description: Optional[str] = None,
    owner_id: str = "",
) -> CompositeWorkflow:
    source = get_composite(composite_id)
    with transaction.atomic():
        composite = CompositeWorkflow.objects.create(
            name=name or source.name,
            description=source.description if description is None else description,
            owner_id=owner_id or source.owner_id,
        )
        for position, item in enumerate(source.items.all()):
            _clone_into(composite, item.step, step_number=position + 1, order_index=position)
    logger.info("Composite %s copied to %s", composite_id, composite.pk)
    return get_composite(composite.pk)


def delete_composite(composite_id: int) -> None:
    deleted, _ = CompositeWorkflow.objects.filter(pk=composite_id).delete()
    if not deleted:
        raise NotFound(f"Composite workflow {composite_id} not found.")
    logger.info("Composite %s deleted", composite_id)


def create_session(composite_id: int, name: str = "", owner_id: str = "") -> CompositeWorkflowSession:
    """Start a session; no per-step rows are written until a step is touched."""

    if not CompositeWorkflow.objects.filter(pk=composite_id).exists():
        raise NotFound(f"Composite workflow {composite_id} not found.")
    session = CompositeWorkflowSession.objects.create(
        composite_id=composite_id, name=name, owner_id=owner_id
    )
    logger.info("Session %s started for composite %s", session.pk, composite_id)
    return session


def delete_session(session_id: int) -> None:
    deleted, _ = CompositeWorkflowSession.objects.filter(pk=session_id).delete()
    if not deleted:
        raise NotFound(f"Session {session_id} not found.")
    logger.info("Session %s deleted", session_id)


def _get_session(session_id: int, *, lock: bool = False) -> CompositeWorkflowSession:
    queryset = CompositeWorkflowSession.objects.select_related("composite")
    if lock:
        queryset = queryset.select_for_update(of=("self",))
    try:
        return queryset.get(pk=session_id)
    except CompositeWorkflowSession.DoesNotExist:
        raise NotFound(f"Session {session_id} not found.") from None


def _resolve(session: CompositeWorkflowSession, *, lock: bool = False) -> List[EffectiveStep]:
    entries = order_entries(_items_queryset().filter(composite_id=session.composite_id))
    rows = CompositeWorkflowSessionStep.objects.filter(session=session)
    if lock:
        rows = rows.select_for_update()
    overrides = {row.step_id: row for row in rows}
    return resolve_session_steps(entries, overrides)


def get_session_view(session_id: int) -> SessionView:
    session = _get_session(session_id)
    return SessionView(session=session, steps=_resolve(session))


def submit_session_step(
    session_id: int,
    step_id: int,
    target: str,
    proof: Optional[Dict[str, Any]] = None,
    submitted_by: str = "",
) -> SessionView:
    """Apply a status transition and/or proof to one step of one session.

    The transition is checked against the step's effective status in this
    session. Only the session's override row is written.
    """

    proof = {field: value for field, value in (proof or {}).items() if value not in (None, "")}
    if proof and not proof.get("proof_content") and not proof.get("proof_file_path"):
        raise ValidationError("Proof needs content or a file reference.")

    with transaction.atomic():
        session = _get_session(session_id, lock=True)
        resolved = _resolve(session, lock=True)
        entry, previous = find(resolved, step_id)
        if entry is None:
            raise StepNotInComposite(
                f"Step {step_id} is not part of composite {session.composite_id}."
            )

        current = entry.status
        row = entry.override
        if row is None:
            row = CompositeWorkflowSessionStep(session=session, step=entry.step, status=current)

        if proof:
            if current != StepStatus.ACTIVE:
                raise InvalidTransition(f"Proof can only be attached to an active step, not {current}.")
            row.attach_proof(proof, submitted_by)

        if target == current:
            if not proof:
                raise InvalidTransition(f"Step {step_id} is already {current} in this session.")
        else:
            if target == StepStatus.ACTIVE and any(
                other.status == StepStatus.ACTIVE for other in resolved if other is not entry
            ):
                raise InvalidTransition("Another step is already active in this session.")
            check_transition(
                current,
                target,
                predecessor_completed=previous is None or previous.is_completed,
                requires_approval=entry.step.requires_approval,
                proof_required=entry.step.proof_required,
                proof_attached=has_proof(row),
            )
            row.status = target
            if target == StepStatus.COMPLETED:
                row.is_completed = True
                row.completed_at = timezone.now()
                row.completed_by = submitted_by

        try:
            with transaction.atomic():
                row.save()
        except IntegrityError:
            logger.warning("Session %s step %s was written concurrently", session_id, step_id)
            raise Conflict(f"Step {step_id} was updated concurrently in session {session_id}.") from None

    logger.info("Session %s step %s: %s -> %s", session_id, step_id, current, row.status)
    return get_session_view(session_id)


def clear_session_step_proof(session_id: int, step_id: int) -> SessionView:
    with transaction.atomic():
        session = _get_session(session_id, lock=True)
        entry, _ = find(_resolve(session, lock=True), step_id)
        if entry is None:
            raise StepNotInComposite(
                f"Step {step_id} is not part of composite {session.composite_id}."
            )
        if entry.is_completed:
            raise InvalidTransition("Proof of a completed step cannot be removed.")
        if entry.override is not None:
            entry.override.clear_proof()
            entry.override.save()
    return get_session_view(session_id)
