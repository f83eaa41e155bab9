"""API views for workflows and their steps."""
from __future__ import annotations

import logging
from typing import Any, Dict

from django.db import DatabaseError, connection
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action, api_view
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response

from . import services
from .models import Approval, Step
from .serializers import (
    ActivitySerializer,
    ApprovalRequestSerializer,
    ApprovalResponseSerializer,
    ApprovalSerializer,
    ProofSerializer,
    StepCreateSerializer,
    StepSerializer,
    WorkflowCreateSerializer,
    WorkflowSerializer,
)

logger = logging.getLogger(__name__)


class WorkflowViewSet(viewsets.ModelViewSet):
    queryset = services.workflow_queryset()
    serializer_class = WorkflowSerializer
    filter_backends = [SearchFilter, OrderingFilter]
    search_fields = ["name", "description"]
    ordering_fields = ["name", "created_at", "updated_at", "priority"]
    ordering = ["-created_at"]
    http_method_names = ["get", "post", "patch", "delete", "head", "options"]
    lookup_value_regex = "[0-9]+"

    def get_serializer_class(self):  # type: ignore[override]
        if self.action == "create":
            return WorkflowCreateSerializer
        return super().get_serializer_class()

    def get_serializer_context(self) -> Dict[str, Any]:
        context = super().get_serializer_context()
        context["active_workflow_id"] = services.active_workflow_id()
        return context

    def perform_destroy(self, instance):  # type: ignore[override]
        services.delete_workflow(instance.pk)

    @action(detail=False, methods=["get"], url_path="active")
    def active(self, request, *args, **kwargs):  # type: ignore[override]
        """Return the workflow shown on the dashboard, or ``null``."""

        workflow = services.get_active()
        if workflow is None:
            return Response(None)
        return Response(self.get_serializer(workflow).data)

    @action(detail=True, methods=["post"], url_path="activate")
    def activate(self, request, pk=None):  # type: ignore[override]
        workflow = services.set_active(int(pk))
        return Response(self.get_serializer(workflow).data)

    @action(detail=True, methods=["post"], url_path="advance")
    def advance(self, request, pk=None):  # type: ignore[override]
        """Move the workflow to its next step."""

        workflow = services.advance(int(pk))
        return Response(self.get_serializer(workflow).data)

    @action(detail=True, methods=["get"], url_path="steps")
    def steps(self, request, *args, **kwargs):  # type: ignore[override]
        workflow = self.get_object()
        return Response(StepSerializer(workflow.steps.all(), many=True).data)

    @action(detail=True, methods=["get"], url_path="activities")
    def activities(self, request, *args, **kwargs):  # type: ignore[override]
        workflow = self.get_object()
        return Response(ActivitySerializer(workflow.activities.all(), many=True).data)


class StepViewSet(
    mixins.CreateModelMixin,
    mixins.RetrieveModelMixin,
    mixins.UpdateModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Step.objects.all()
    serializer_class = StepSerializer
    http_method_names = ["get", "post", "patch", "delete", "head", "options"]
    lookup_value_regex = "[0-9]+"

    def get_serializer_class(self):  # type: ignore[override]
        if self.action == "create":
            return StepCreateSerializer
        return super().get_serializer_class()

    @action(detail=True, methods=["post"], url_path="complete")
    def complete(self, request, pk=None):  # type: ignore[override]
        step = services.complete_step(int(pk))
        return Response(StepSerializer(step).data)

    @action(detail=True, methods=["post", "delete"], url_path="proof")
    def proof(self, request: Request, pk=None):  # type: ignore[override]
        """Attach or remove proof of completion."""

        if request.method == "DELETE":
            step = services.clear_step_proof(int(pk))
            return Response(StepSerializer(step).data)

        payload = ProofSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        proof = dict(payload.validated_data)
        submitted_by = proof.pop("submitted_by", "")
        step = services.submit_step_proof(int(pk), proof, submitted_by)
        return Response(StepSerializer(step).data, status=status.HTTP_200_OK)

    @action(detail=True, methods=["post"], url_path="request-approval")
    def request_approval(self, request: Request, pk=None):  # type: ignore[override]
        payload = ApprovalRequestSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        approval = services.request_approval(int(pk), **payload.validated_data)
        return Response(ApprovalSerializer(approval).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"], url_path="approvals")
    def approvals(self, request, *args, **kwargs):  # type: ignore[override]
        step = self.get_object()
        return Response(ApprovalSerializer(step.approvals.all(), many=True).data)


class ApprovalViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    queryset = Approval.objects.all()
    serializer_class = ApprovalSerializer
    http_method_names = ["get", "patch", "head", "options"]
    lookup_value_regex = "[0-9]+"

    def get_queryset(self):  # type: ignore[override]
        queryset = super().get_queryset()
        step = self.request.query_params.get("step")
        if step is not None and step.isdigit():
            queryset = queryset.filter(step_id=int(step))
        return queryset

    def partial_update(self, request: Request, pk=None) -> Response:
        """Approve, reject or request changes on a pending approval."""

        payload = ApprovalResponseSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        approval = services.respond_to_approval(int(pk), **payload.validated_data)
        return Response(ApprovalSerializer(approval).data)


@api_view(["GET"])
def ping(request: Request) -> Response:
    """Liveness probe polled by the external uptime checker."""

    try:
        connection.ensure_connection()
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        database = "connected"
    except DatabaseError:
        logger.exception("Database liveness check failed")
        database = "error"
    return Response({"status": "ok", "database": database})
