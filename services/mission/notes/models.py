"""Database models for the notes service."""
from __future__ import annotations

from django.db import models


class Note(models.Model):
    """A free-form note kept alongside missions."""

    owner_id = models.CharField(max_length=255, blank=True)
    title = models.CharField(max_length=255)
    content = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-updated_at", "id"]

    def __str__(self) -> str:
        return self.title
