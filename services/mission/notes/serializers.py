"""Serializers for notes."""
from __future__ import annotations

from rest_framework import serializers

from .models import Note


class NoteSerializer(serializers.ModelSerializer):
    class Meta:
        model = Note
        fields = [
            "id",
            "owner_id",
            "title",
            "content",
            "created_at",
            "updated_at",
        ]
