"""Workflow progression engine and active-workflow selector.

Every mutating operation runs in one transaction and locks the workflow row
it touches, so concurrent requests against the same workflow are serialized
and a failed check leaves nothing written.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.db import IntegrityError, transaction
from django.db.models import Prefetch, QuerySet
from django.utils import timezone

from .exceptions import (
    Conflict,
    InvalidTransition,
    NotFound,
    StepNotCompleted,
    ValidationError,
    WorkflowComplete,
)
from .models import Activity, ActiveWorkflow, Approval, Step, Workflow
from .state_machine import StepStatus, check_transition, has_proof, initial_status

logger = logging.getLogger(__name__)


def workflow_queryset() -> QuerySet:
    return Workflow.objects.prefetch_related(
        Prefetch("steps", queryset=Step.objects.order_by("step_number", "id"))
    )


def get_workflow(workflow_id: int) -> Workflow:
    try:
        return workflow_queryset().get(pk=workflow_id)
    except Workflow.DoesNotExist:
        raise NotFound(f"Workflow {workflow_id} not found.") from None


def _lock_workflow(workflow_id: int) -> Workflow:
    try:
        return Workflow.objects.select_for_update().get(pk=workflow_id)
    except Workflow.DoesNotExist:
        raise NotFound(f"Workflow {workflow_id} not found.") from None


def _lock_step(step_id: int) -> Step:
    try:
        return Step.objects.select_for_update().get(pk=step_id)
    except Step.DoesNotExist:
        raise NotFound(f"Step {step_id} not found.") from None


def _record(workflow: Workflow, action: str, description: str, step: Optional[Step] = None) -> Activity:
    return Activity.objects.create(
        workflow=workflow,
        step_id=step.pk if step is not None else None,
        action=action,
        description=description,
    )


def _step_at(workflow: Workflow, step_number: int) -> Optional[Step]:
    return (
        Step.objects.select_for_update()
        .filter(workflow=workflow, step_number=step_number)
        .order_by("id")
        .first()
    )


def validate_step_number(workflow: Workflow, step_number: int, *, exclude_pk: Optional[int] = None) -> None:
    if not 1 <= step_number <= workflow.total_steps:
        raise ValidationError(
            f"step_number must be between 1 and {workflow.total_steps}."
        )
    taken = Step.objects.filter(workflow=workflow, step_number=step_number)
    if exclude_pk is not None:
        taken = taken.exclude(pk=exclude_pk)
    if taken.exists():
        raise ValidationError(f"Step {step_number} already exists in this workflow.")


def add_step(workflow_id: int, data: Dict[str, Any]) -> Step:
    """Attach a new step to a workflow, deriving its status from the position."""

    with transaction.atomic():
        workflow = _lock_workflow(workflow_id)
        step_number = data["step_number"]
        validate_step_number(workflow, step_number)
        status = initial_status(step_number, workflow.current_step)
        step = Step(workflow=workflow, status=status, **data)
        if status == StepStatus.COMPLETED:
            step.mark_completed()
        try:
            step.save()
        except IntegrityError:
            raise Conflict(f"Step {step_number} was created concurrently.") from None
    logger.info("Step %s added to workflow %s at position %s", step.pk, workflow_id, step_number)
    return step


def _mark_finished(workflow: Workflow) -> None:
    if workflow.status != Workflow.COMPLETED:
        workflow.status = Workflow.COMPLETED
        workflow.save(update_fields=["status", "updated_at"])
        logger.info("Workflow %s completed", workflow.pk)


def advance(workflow_id: int) -> Workflow:
    """Move ``current_step`` forward by one once the current step is done."""

    with transaction.atomic():
        workflow = _lock_workflow(workflow_id)
        observed = workflow.current_step

        current = _step_at(workflow, observed)
        if current is None:
            # No row at this position: the completion gate is not applied.
            logger.info("Workflow %s has no step row at %s; advancing ungated", workflow_id, observed)
        elif current.status != StepStatus.COMPLETED:
            raise StepNotCompleted(
                f"Step {observed} of workflow {workflow_id} is {current.status}, not completed."
            )

        finished = observed >= workflow.total_steps
        if finished:
            # Nothing is left to complete at the final position.
            _mark_finished(workflow)
        else:
            next_number = observed + 1
            next_step = _step_at(workflow, next_number)
            if next_step is not None:
                check_transition(next_step.status, StepStatus.ACTIVE, predecessor_completed=True)

            updated = Workflow.objects.filter(pk=workflow.pk, current_step=observed).update(
                current_step=next_number, updated_at=timezone.now()
            )
            if not updated:
                logger.warning("Workflow %s advanced concurrently from step %s", workflow_id, observed)
                raise Conflict(f"Workflow {workflow_id} was advanced concurrently.")

            if next_step is not None:
                next_step.status = StepStatus.ACTIVE
                next_step.save(update_fields=["status"])
            elif next_number == workflow.total_steps:
                _mark_finished(workflow)

            _record(workflow, Activity.STEP_ADVANCED, f"Advanced to phase {next_number}", current)

    if finished:
        raise WorkflowComplete(f"Workflow {workflow_id} is at its final step.")
    logger.info("Workflow %s advanced from step %s to %s", workflow_id, observed, next_number)
    return get_workflow(workflow_id)


def update_workflow(workflow_id: int, data: Dict[str, Any]) -> Workflow:
    """Apply descriptive edits. Growing a completed workflow reopens it."""

    with transaction.atomic():
        workflow = _lock_workflow(workflow_id)
        total_steps = data.get("total_steps", workflow.total_steps)
        if workflow.status == Workflow.COMPLETED and total_steps > workflow.total_steps:
            workflow.status = Workflow.ACTIVE
            logger.info(
                "Workflow %s reopened: total steps %s -> %s", workflow_id, workflow.total_steps, total_steps
            )
        for field, value in data.items():
            setattr(workflow, field, value)
        workflow.save()
    return get_workflow(workflow_id)


def _workflow_step(step_id: int) -> Step:
    step = _lock_step(step_id)
    if step.workflow_id is None:
        raise InvalidTransition("Template steps progress through composite sessions.")
    return step


def complete_step(step_id: int) -> Step:
    """Complete the active step of a workflow."""

    with transaction.atomic():
        owner = Step.objects.filter(pk=step_id).values("workflow_id").first()
        if owner is None:
            raise NotFound(f"Step {step_id} not found.")
        if owner["workflow_id"] is not None:
            _lock_workflow(owner["workflow_id"])
        step = _workflow_step(step_id)
        workflow = step.workflow

        check_transition(
            step.status,
            StepStatus.COMPLETED,
            predecessor_completed=True,
            requires_approval=step.requires_approval,
            proof_required=step.proof_required,
            proof_attached=has_proof(step),
            approved=step.approvals.filter(status=Approval.APPROVED).exists(),
        )
        step.mark_completed()
        step.save(update_fields=["status", "is_completed", "completed_at"])

        if step.step_number >= workflow.total_steps:
            _mark_finished(workflow)

        _record(workflow, Activity.STEP_COMPLETED, f"Completed phase {step.step_number}: {step.name}", step)

    logger.info("Step %s of workflow %s completed", step_id, workflow.pk)
    return step


def submit_step_proof(step_id: int, proof: Dict[str, Any], submitted_by: str = "") -> Step:
    """Attach proof of completion to the active step of a workflow."""

    if not proof.get("proof_content") and not proof.get("proof_file_path"):
        raise ValidationError("Proof needs content or a file reference.")

    with transaction.atomic():
        step = _workflow_step(step_id)
        if step.status != StepStatus.ACTIVE:
            raise InvalidTransition(f"Proof can only be attached to an active step, not {step.status}.")
        step.attach_proof(proof, submitted_by)
        step.save()
        _record(step.workflow, Activity.PROOF_SUBMITTED, f"Proof submitted for phase {step.step_number}", step)

    logger.info("Proof submitted for step %s", step_id)
    return step


def clear_step_proof(step_id: int) -> Step:
    with transaction.atomic():
        step = _workflow_step(step_id)
        if step.status == StepStatus.COMPLETED:
            raise InvalidTransition("Proof of a completed step cannot be removed.")
        step.clear_proof()
        step.save()
        _record(step.workflow, Activity.PROOF_CLEARED, f"Proof cleared for phase {step.step_number}", step)
    return step


def request_approval(step_id: int, requested_by: str = "", comments: str = "") -> Approval:
    """Open a review request for the active step of a workflow."""

    with transaction.atomic():
        step = _workflow_step(step_id)
        if not step.requires_approval:
            raise ValidationError(f"Step {step_id} does not require approval.")
        if step.status != StepStatus.ACTIVE:
            raise InvalidTransition(f"Approval can only be requested for an active step, not {step.status}.")
        if step.approvals.filter(status=Approval.PENDING).exists():
            raise Conflict(f"Step {step_id} already has a pending approval request.")
        approval = Approval.objects.create(step=step, requested_by=requested_by, comments=comments)
        _record(step.workflow, Activity.APPROVAL_REQUESTED, f"Approval requested for phase {step.step_number}", step)

    logger.info("Approval %s requested for step %s", approval.pk, step_id)
    return approval


def respond_to_approval(approval_id: int, status: str, responded_by: str = "", comments: str = "") -> Approval:
    """Record the reviewer's decision on a pending request."""

    with transaction.atomic():
        try:
            approval = Approval.objects.select_for_update().select_related("step").get(pk=approval_id)
        except Approval.DoesNotExist:
            raise NotFound(f"Approval {approval_id} not found.") from None
        if approval.status != Approval.PENDING:
            raise InvalidTransition(f"Approval {approval_id} was already {approval.status}.")
        if status == Approval.PENDING:
            raise ValidationError("A response must approve, reject or request changes.")
        approval.status = status
        approval.responded_by = responded_by
        approval.responded_at = timezone.now()
        if comments:
            approval.comments = comments
        approval.save()
        step = approval.step
        if step.workflow_id is not None:
            _record(
                step.workflow,
                Activity.APPROVAL_RESPONDED,
                f"Approval for phase {step.step_number} {status.replace('_', ' ')}",
                step,
            )

    logger.info("Approval %s for step %s: %s", approval_id, approval.step_id, status)
    return approval


def active_workflow_id() -> Optional[int]:
    return (
        ActiveWorkflow.objects.filter(pk=ActiveWorkflow.SINGLETON_ID)
        .values_list("workflow_id", flat=True)
        .first()
    )


def get_active() -> Optional[Workflow]:
    workflow_id = active_workflow_id()
    if workflow_id is None:
        return None
    return workflow_queryset().filter(pk=workflow_id).first()


def set_active(workflow_id: int) -> Workflow:
    """Point the dashboard at ``workflow_id``; the previous one stops being active."""

    with transaction.atomic():
        workflow = _lock_workflow(workflow_id)
        pointer, _ = ActiveWorkflow.objects.select_for_update().get_or_create(
            pk=ActiveWorkflow.SINGLETON_ID
        )
        previous = pointer.workflow_id
        pointer.workflow = workflow
        pointer.save(update_fields=["workflow", "updated_at"])
        if previous != workflow.pk:
            _record(workflow, Activity.WORKFLOW_ACTIVATED, f"{workflow.name} set as the active mission")

    logger.info("Active workflow switched from %s to %s", previous, workflow_id)
    return get_workflow(workflow_id)


def delete_workflow(workflow_id: int) -> None:
    with transaction.atomic():
        workflow = _lock_workflow(workflow_id)
        workflow.delete()
    logger.info("Workflow %s deleted", workflow_id)
