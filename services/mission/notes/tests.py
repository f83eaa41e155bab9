"""Smoke tests for the notes endpoints."""
from __future__ import annotations

from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from .models import Note


class NoteApiTests(TestCase):
    def setUp(self) -> None:
        self.client = APIClient()

    def test_create_update_and_delete_note(self) -> None:
        response = self.client.post(
            reverse("note-list"),
            {"title": "Extraction window", "content": "Between 02:00 and 03:00.", "owner_id": "ops-1"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        note_id = response.data["id"]

        response = self.client.patch(
            reverse("note-detail", args=[note_id]),
            {"content": "Moved to 04:00."},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(Note.objects.get(pk=note_id).content, "Moved to 04:00.")

        response = self.client.delete(reverse("note-detail", args=[note_id]))
        self.assertEqual(response.status_code, 204)
        self.assertFalse(Note.objects.exists())

    def test_list_filters_by_owner(self) -> None:
        Note.objects.create(title="Mine", owner_id="ops-1")
        Note.objects.create(title="Theirs", owner_id="ops-2")

        response = self.client.get(reverse("note-list"), {"owner_id": "ops-1"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual([note["title"] for note in response.data], ["Mine"])

    def test_title_is_required(self) -> None:
        response = self.client.post(reverse("note-list"), {"content": "No title"}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "validation_error")
        self.assertIn("title", response.data["detail"])
