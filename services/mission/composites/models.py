"""Database models for composite workflows and their sessions."""
from __future__ import annotations

from django.db import models

from workflows.models import ProofFields, Step
from workflows.state_machine import StepStatus


class CompositeWorkflow(models.Model):
    """An ordered bundle of template steps drawn from one or more workflows."""

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    owner_id = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "id"]

    def __str__(self) -> str:
        return self.name


class CompositeWorkflowItem(models.Model):
    """Places a template step at ``order_index`` inside a composite."""

    composite = models.ForeignKey(CompositeWorkflow, related_name="items", on_delete=models.CASCADE)
    step = models.ForeignKey(Step, related_name="composite_items", on_delete=models.CASCADE)
    order_index = models.IntegerField(default=0)

    class Meta:
        ordering = ["order_index", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["composite", "order_index"], name="unique_composite_order_index"
            ),
        ]

    def __str__(self) -> str:
        return f"{self.composite_id}@{self.order_index}: step {self.step_id}"


class CompositeWorkflowSession(models.Model):
    """An independent progression instance over a composite's steps."""

    composite = models.ForeignKey(CompositeWorkflow, related_name="sessions", on_delete=models.CASCADE)
    name = models.CharField(max_length=255, blank=True)
    owner_id = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "id"]

    def __str__(self) -> str:
        return self.name or f"Session {self.pk}"


class CompositeWorkflowSessionStep(ProofFields):
    """Session-scoped override of a template step's state."""

    session = models.ForeignKey(
        CompositeWorkflowSession, related_name="session_steps", on_delete=models.CASCADE
    )
    step = models.ForeignKey(Step, related_name="session_overrides", on_delete=models.CASCADE)
    status = models.CharField(max_length=16, choices=StepStatus.choices, default=StepStatus.LOCKED)
    is_completed = models.BooleanField(default=False)
    completed_at = models.DateTimeField(null=True, blank=True)
    completed_by = models.CharField(max_length=255, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(fields=["session", "step"], name="unique_session_step"),
        ]

    def __str__(self) -> str:
        return f"session {self.session_id} step {self.step_id}: {self.status}"
