"""Route registration for composite workflow endpoints."""
from __future__ import annotations

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import CompositeSessionViewSet, CompositeWorkflowViewSet

router = DefaultRouter()
router.register("composites", CompositeWorkflowViewSet, basename="composite")
router.register("composite-sessions", CompositeSessionViewSet, basename="composite-session")

urlpatterns = [
    path("", include(router.urls)),
]
