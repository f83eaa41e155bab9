"""URL configuration for the mission service."""
from django.urls import include, path

from workflows.views import ping

urlpatterns = [
    path("ping", ping, name="ping"),
    path("api/", include("workflows.urls")),
    path("api/", include("composites.urls")),
    path("api/", include("notes.urls")),
]
