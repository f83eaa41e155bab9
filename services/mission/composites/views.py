"""API views for composite workflows and their sessions."""
from __future__ import annotations

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response

from . import services
from .models import CompositeWorkflowSession
from .serializers import (
    CompositeAddStepSerializer,
    CompositeCopySerializer,
    CompositeCreateSerializer,
    CompositeItemSerializer,
    CompositeWorkflowSerializer,
    SessionSerializer,
    SessionTransitionSerializer,
    SessionViewSerializer,
)


class CompositeWorkflowViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    queryset = services.composite_queryset()
    serializer_class = CompositeWorkflowSerializer
    filter_backends = [SearchFilter, OrderingFilter]
    search_fields = ["name", "description"]
    ordering_fields = ["name", "created_at"]
    ordering = ["-created_at"]
    lookup_value_regex = "[0-9]+"

    def create(self, request: Request, *args, **kwargs) -> Response:
        payload = CompositeCreateSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        composite = services.create_composite(**payload.validated_data)
        return Response(self.get_serializer(composite).data, status=status.HTTP_201_CREATED)

    def destroy(self, request: Request, pk=None) -> Response:
        services.delete_composite(int(pk))
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"], url_path="steps")
    def add_step(self, request: Request, pk=None) -> Response:
        """Append a copy of an existing step to the composite."""

        payload = CompositeAddStepSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        item = services.add_composite_step(int(pk), **payload.validated_data)
        return Response(CompositeItemSerializer(item).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="copy")
    def copy(self, request: Request, pk=None) -> Response:
        payload = CompositeCopySerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        composite = services.copy_composite(int(pk), **payload.validated_data)
        return Response(self.get_serializer(composite).data, status=status.HTTP_201_CREATED)


class CompositeSessionViewSet(
    mixins.ListModelMixin,
    viewsets.GenericViewSet,
):
    queryset = CompositeWorkflowSession.objects.select_related("composite").all()
    serializer_class = SessionSerializer
    filter_backends = [OrderingFilter]
    ordering_fields = ["created_at", "name"]
    ordering = ["-created_at"]
    lookup_value_regex = "[0-9]+"

    def get_queryset(self):  # type: ignore[override]
        queryset = super().get_queryset()
        composite = self.request.query_params.get("composite")
        if composite is not None and composite.isdigit():
            queryset = queryset.filter(composite_id=int(composite))
        return queryset

    def create(self, request: Request, *args, **kwargs) -> Response:
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        session = services.create_session(
            data["composite"].pk,
            name=data.get("name", ""),
            owner_id=data.get("owner_id", ""),
        )
        return Response(self.get_serializer(session).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request: Request, pk=None) -> Response:
        """Return the session with each step's effective status."""

        view = services.get_session_view(int(pk))
        return Response(SessionViewSerializer(view).data)

    def destroy(self, request: Request, pk=None) -> Response:
        services.delete_session(int(pk))
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"], url_path=r"steps/(?P<step_id>[0-9]+)/submit")
    def submit_step(self, request: Request, pk=None, step_id=None) -> Response:
        payload = SessionTransitionSerializer(data=request.data)
        payload.is_valid(raise_exception=True)
        data = dict(payload.validated_data)
        target = data.pop("status")
        submitted_by = data.pop("submitted_by", "")
        view = services.submit_session_step(int(pk), int(step_id), target, data, submitted_by)
        return Response(SessionViewSerializer(view).data)

    @action(detail=True, methods=["delete"], url_path=r"steps/(?P<step_id>[0-9]+)/proof")
    def clear_proof(self, request: Request, pk=None, step_id=None) -> Response:
        view = services.clear_session_step_proof(int(pk), int(step_id))
        return Response(SessionViewSerializer(view).data)
