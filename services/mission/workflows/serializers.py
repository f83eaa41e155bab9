"""Serializers for workflow entities."""
from __future__ import annotations

from typing import Any, Dict, List

from django.db import transaction
from rest_framework import serializers

from . import services
from .models import Activity, Approval, Step, Workflow
from .state_machine import PROOF_FIELDS, StepStatus, initial_status

STEP_FIELDS = [
    "id",
    "workflow",
    "composite",
    "source_workflow",
    "step_number",
    "name",
    "description",
    "status",
    "is_completed",
    "requires_approval",
    "proof_required",
    *PROOF_FIELDS,
    "proof_submitted_at",
    "proof_submitted_by",
    "created_at",
    "completed_at",
]


class StepSerializer(serializers.ModelSerializer):
    class Meta:
        model = Step
        fields = STEP_FIELDS
        read_only_fields = [
            field
            for field in STEP_FIELDS
            if field not in {"name", "description", "requires_approval", "proof_required"}
        ]


class StepCreateSerializer(StepSerializer):
    workflow = serializers.PrimaryKeyRelatedField(queryset=Workflow.objects.all())
    step_number = serializers.IntegerField(min_value=1)

    def create(self, validated_data: Dict[str, Any]) -> Step:  # type: ignore[override]
        workflow = validated_data.pop("workflow")
        return services.add_step(workflow.pk, validated_data)


class WorkflowStepInputSerializer(serializers.Serializer):
    step_number = serializers.IntegerField(min_value=1, required=False)
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    requires_approval = serializers.BooleanField(required=False, default=False)
    proof_required = serializers.BooleanField(required=False, default=False)


class WorkflowSerializer(serializers.ModelSerializer):
    steps = StepSerializer(many=True, read_only=True)
    is_active = serializers.SerializerMethodField()

    class Meta:
        model = Workflow
        fields = [
            "id",
            "name",
            "description",
            "total_steps",
            "current_step",
            "is_active",
            "status",
            "priority",
            "steps",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["status"]
        extra_kwargs = {
            "total_steps": {"min_value": 1},
            "current_step": {"min_value": 1, "required": False},
        }

    def get_is_active(self, obj: Workflow) -> bool:
        if "active_workflow_id" not in self.context:
            self.context["active_workflow_id"] = services.active_workflow_id()
        return obj.pk == self.context["active_workflow_id"]

    def validate(self, attrs: Dict[str, Any]) -> Dict[str, Any]:
        total_steps = attrs.get("total_steps", getattr(self.instance, "total_steps", None))
        current_step = attrs.get("current_step", getattr(self.instance, "current_step", 1))
        if self.instance is not None and "current_step" in attrs and attrs["current_step"] != self.instance.current_step:
            raise serializers.ValidationError(
                {"current_step": "The current step only moves through the advance action."}
            )
        if total_steps is not None and current_step > total_steps:
            raise serializers.ValidationError(
                {"current_step": "Must not exceed total_steps."}
            )
        if self.instance is not None and "total_steps" in attrs:
            highest = max((step.step_number for step in self.instance.steps.all()), default=0)
            if attrs["total_steps"] < highest:
                raise serializers.ValidationError(
                    {"total_steps": f"Step {highest} exists; total_steps cannot be lower."}
                )
        return attrs

    @transaction.atomic
    def create(self, validated_data: Dict[str, Any]) -> Workflow:  # type: ignore[override]
        steps: List[Dict[str, Any]] = validated_data.pop("steps", [])
        workflow = Workflow.objects.create(**validated_data)
        for index, step in enumerate(steps, start=1):
            step_number = step.pop("step_number", index)
            services.validate_step_number(workflow, step_number)
            record = Step(
                workflow=workflow,
                step_number=step_number,
                status=initial_status(step_number, workflow.current_step),
                **step,
            )
            if record.status == StepStatus.COMPLETED:
                record.mark_completed()
            record.save()
        return services.get_workflow(workflow.pk)

    def update(self, instance: Workflow, validated_data: Dict[str, Any]) -> Workflow:  # type: ignore[override]
        return services.update_workflow(instance.pk, validated_data)


class WorkflowCreateSerializer(WorkflowSerializer):
    steps = WorkflowStepInputSerializer(many=True, required=False)

    def to_representation(self, instance: Workflow) -> Dict[str, Any]:
        return WorkflowSerializer(instance, context=self.context).data


class ProofSerializer(serializers.Serializer):
    proof_title = serializers.CharField(max_length=255, required=False, allow_blank=True)
    proof_description = serializers.CharField(required=False, allow_blank=True)
    proof_content = serializers.CharField(required=False, allow_blank=True)
    proof_file_path = serializers.CharField(max_length=1024, required=False, allow_blank=True)
    proof_file_name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    proof_mime_type = serializers.CharField(max_length=255, required=False, allow_blank=True)
    proof_file_size = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    submitted_by = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class ActivitySerializer(serializers.ModelSerializer):
    class Meta:
        model = Activity
        fields = ["id", "workflow", "step_id", "action", "description", "created_at"]


class ApprovalSerializer(serializers.ModelSerializer):
    class Meta:
        model = Approval
        fields = [
            "id",
            "step",
            "status",
            "requested_by",
            "responded_by",
            "comments",
            "requested_at",
            "responded_at",
        ]
        read_only_fields = fields


class ApprovalRequestSerializer(serializers.Serializer):
    requested_by = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    comments = serializers.CharField(required=False, allow_blank=True, default="")


class ApprovalResponseSerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=[choice for choice in Approval.STATUS_CHOICES if choice[0] != Approval.PENDING]
    )
    responded_by = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    comments = serializers.CharField(required=False, allow_blank=True, default="")
