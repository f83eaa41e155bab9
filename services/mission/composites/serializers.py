"""Serializers for composite workflows and sessions."""
from __future__ import annotations

from typing import Any, Dict

from rest_framework import serializers

from workflows.serializers import ProofSerializer
from workflows.state_machine import StepStatus

from .models import CompositeWorkflow, CompositeWorkflowItem, CompositeWorkflowSession


class CompositeStepSerializer(serializers.Serializer):
    """A template step as placed in a composite."""

    id = serializers.IntegerField(source="step.id")
    item_id = serializers.IntegerField(source="id")
    order_index = serializers.IntegerField()
    step_number = serializers.IntegerField(source="step.step_number")
    name = serializers.CharField(source="step.name")
    description = serializers.CharField(source="step.description")
    requires_approval = serializers.BooleanField(source="step.requires_approval")
    proof_required = serializers.BooleanField(source="step.proof_required")
    source_workflow = serializers.IntegerField(source="step.source_workflow_id", allow_null=True)
    workflow_name = serializers.SerializerMethodField()

    def get_workflow_name(self, item: CompositeWorkflowItem) -> str:
        source = item.step.source_workflow
        return source.name if source is not None else "Independent Phase"


class CompositeWorkflowSerializer(serializers.ModelSerializer):
    steps = CompositeStepSerializer(source="items", many=True, read_only=True)

    class Meta:
        model = CompositeWorkflow
        fields = ["id", "name", "description", "owner_id", "steps", "created_at"]


class CompositeCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    owner_id = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    step_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), required=False, default=list)


class CompositeAddStepSerializer(serializers.Serializer):
    step_id = serializers.IntegerField(min_value=1)
    order_index = serializers.IntegerField(required=False, allow_null=True, default=None)


class CompositeCopySerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True, default=None)
    owner_id = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")


class CompositeItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = CompositeWorkflowItem
        fields = ["id", "composite", "step", "order_index"]


class SessionSerializer(serializers.ModelSerializer):
    composite_name = serializers.CharField(source="composite.name", read_only=True)

    class Meta:
        model = CompositeWorkflowSession
        fields = ["id", "composite", "composite_name", "name", "owner_id", "created_at"]


class EffectiveStepSerializer(serializers.Serializer):
    """A template step with the state it has in one session."""

    id = serializers.IntegerField(source="step.id")
    item_id = serializers.IntegerField(source="item.id")
    order_index = serializers.IntegerField(source="item.order_index")
    step_number = serializers.IntegerField(source="step.step_number")
    name = serializers.CharField(source="step.name")
    description = serializers.CharField(source="step.description")
    requires_approval = serializers.BooleanField(source="step.requires_approval")
    proof_required = serializers.BooleanField(source="step.proof_required")
    source_workflow = serializers.IntegerField(source="step.source_workflow_id", allow_null=True)
    status = serializers.CharField()
    is_completed = serializers.BooleanField()
    completed_at = serializers.DateTimeField(allow_null=True)

    def to_representation(self, instance) -> Dict[str, Any]:  # type: ignore[override]
        data = super().to_representation(instance)
        proof = dict(instance.proof)
        submitted_at = proof.get("proof_submitted_at")
        if submitted_at is not None:
            proof["proof_submitted_at"] = serializers.DateTimeField().to_representation(submitted_at)
        data.update(proof)
        return data


class SessionViewSerializer(serializers.Serializer):
    id = serializers.IntegerField(source="session.id")
    composite = serializers.IntegerField(source="session.composite_id")
    composite_name = serializers.CharField(source="session.composite.name")
    name = serializers.CharField(source="session.name")
    owner_id = serializers.CharField(source="session.owner_id")
    created_at = serializers.DateTimeField(source="session.created_at")
    steps = EffectiveStepSerializer(many=True)
    progress = serializers.DictField(child=serializers.IntegerField())


class SessionTransitionSerializer(ProofSerializer):
    status = serializers.ChoiceField(choices=StepStatus.choices)
