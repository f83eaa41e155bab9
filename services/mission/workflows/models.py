"""Database models for the mission service."""
from __future__ import annotations

from django.db import models
from django.utils import timezone

from .state_machine import StepStatus


class Workflow(models.Model):
    """A mission: an ordered run of steps tracked by ``current_step``."""

    ACTIVE = "active"
    COMPLETED = "completed"

    STATUS_CHOICES = [
        (ACTIVE, "Active"),
        (COMPLETED, "Completed"),
    ]

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    PRIORITY_CHOICES = [
        (LOW, "Low"),
        (MEDIUM, "Medium"),
        (HIGH, "High"),
        (CRITICAL, "Critical"),
    ]

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    total_steps = models.PositiveIntegerField()
    current_step = models.PositiveIntegerField(default=1)
    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default=ACTIVE)
    priority = models.CharField(max_length=16, choices=PRIORITY_CHOICES, default=HIGH)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "id"]

    def __str__(self) -> str:
        return f"{self.name} ({self.current_step}/{self.total_steps})"


class ProofFields(models.Model):
    """Proof-of-completion columns shared by steps and session overrides."""

    proof_title = models.CharField(max_length=255, blank=True)
    proof_description = models.TextField(blank=True)
    proof_content = models.TextField(blank=True)
    proof_file_path = models.CharField(max_length=1024, blank=True)
    proof_file_name = models.CharField(max_length=255, blank=True)
    proof_mime_type = models.CharField(max_length=255, blank=True)
    proof_file_size = models.PositiveIntegerField(null=True, blank=True)
    proof_submitted_at = models.DateTimeField(null=True, blank=True)
    proof_submitted_by = models.CharField(max_length=255, blank=True)

    class Meta:
        abstract = True

    def attach_proof(self, proof: dict, submitted_by: str = "") -> None:
        for field, value in proof.items():
            setattr(self, field, value)
        self.proof_submitted_by = submitted_by
        self.proof_submitted_at = timezone.now()

    def clear_proof(self) -> None:
        self.proof_title = ""
        self.proof_description = ""
        self.proof_content = ""
        self.proof_file_path = ""
        self.proof_file_name = ""
        self.proof_mime_type = ""
        self.proof_file_size = None
        self.proof_submitted_at = None
        self.proof_submitted_by = ""


class Step(ProofFields):
    """A step owned either by a workflow or, as a template, by a composite."""

    workflow = models.ForeignKey(
        Workflow,
        related_name="steps",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
    )
    composite = models.ForeignKey(
        "composites.CompositeWorkflow",
        related_name="template_steps",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
    )
    source_workflow = models.ForeignKey(
        Workflow,
        related_name="+",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    step_number = models.PositiveIntegerField()
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=16, choices=StepStatus.choices, default=StepStatus.LOCKED)
    is_completed = models.BooleanField(default=False)
    requires_approval = models.BooleanField(default=False)
    proof_required = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["step_number", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["workflow", "step_number"], name="unique_workflow_step_number"
            ),
            models.UniqueConstraint(
                fields=["composite", "step_number"], name="unique_composite_step_number"
            ),
        ]

    def __str__(self) -> str:
        return f"{self.step_number}. {self.name} ({self.status})"

    def mark_completed(self) -> None:
        self.status = StepStatus.COMPLETED
        self.is_completed = True
        self.completed_at = timezone.now()


class ActiveWorkflow(models.Model):
    """Single-row pointer to the workflow shown on the home dashboard."""

    SINGLETON_ID = 1

    workflow = models.ForeignKey(
        Workflow,
        related_name="+",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"active={self.workflow_id}"


class Activity(models.Model):
    """Audit trail entry for an engine action on a workflow."""

    STEP_ADVANCED = "step_advanced"
    STEP_COMPLETED = "step_completed"
    PROOF_SUBMITTED = "proof_submitted"
    PROOF_CLEARED = "proof_cleared"
    WORKFLOW_ACTIVATED = "workflow_activated"
    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_RESPONDED = "approval_responded"

    ACTION_CHOICES = [
        (STEP_ADVANCED, "Step advanced"),
        (STEP_COMPLETED, "Step completed"),
        (PROOF_SUBMITTED, "Proof submitted"),
        (PROOF_CLEARED, "Proof cleared"),
        (WORKFLOW_ACTIVATED, "Workflow activated"),
        (APPROVAL_REQUESTED, "Approval requested"),
        (APPROVAL_RESPONDED, "Approval responded"),
    ]

    workflow = models.ForeignKey(Workflow, related_name="activities", on_delete=models.CASCADE)
    step_id = models.BigIntegerField(null=True, blank=True)
    action = models.CharField(max_length=32, choices=ACTION_CHOICES)
    description = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self) -> str:
        return f"{self.action}: {self.description}"


class Approval(models.Model):
    """A review request raised against a workflow step."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CHANGES_REQUESTED = "changes_requested"

    STATUS_CHOICES = [
        (PENDING, "Pending"),
        (APPROVED, "Approved"),
        (REJECTED, "Rejected"),
        (CHANGES_REQUESTED, "Changes requested"),
    ]

    step = models.ForeignKey(Step, related_name="approvals", on_delete=models.CASCADE)
    status = models.CharField(max_length=32, choices=STATUS_CHOICES, default=PENDING)
    requested_by = models.CharField(max_length=255, blank=True)
    responded_by = models.CharField(max_length=255, blank=True)
    comments = models.TextField(blank=True)
    requested_at = models.DateTimeField(auto_now_add=True)
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-requested_at", "-id"]

    def __str__(self) -> str:
        return f"approval {self.pk} for step {self.step_id}: {self.status}"
