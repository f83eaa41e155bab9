"""WSGI config for the mission service."""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "mission_service.settings")

application = get_wsgi_application()
