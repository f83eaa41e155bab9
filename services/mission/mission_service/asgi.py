"""ASGI config for the mission service."""
import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "mission_service.settings")

application = get_asgi_application()
