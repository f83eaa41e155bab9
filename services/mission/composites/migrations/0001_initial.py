# Generated manually for initial schema.
from __future__ import annotations

from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("workflows", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="CompositeWorkflow",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                ("owner_id", models.CharField(blank=True, max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={"ordering": ["-created_at", "id"]},
        ),
        migrations.CreateModel(
            name="CompositeWorkflowItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("order_index", models.IntegerField(default=0)),
                (
                    "composite",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="composites.compositeworkflow",
                    ),
                ),
                (
                    "step",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="composite_items",
                        to="workflows.step",
                    ),
                ),
            ],
            options={"ordering": ["order_index", "id"]},
        ),
        migrations.AddConstraint(
            model_name="compositeworkflowitem",
            constraint=models.UniqueConstraint(fields=("composite", "order_index"), name="unique_composite_order_index"),
        ),
        migrations.CreateModel(
            name="CompositeWorkflowSession",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(blank=True, max_length=255)),
                ("owner_id", models.CharField(blank=True, max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "composite",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="sessions",
                        to="composites.compositeworkflow",
                    ),
                ),
            ],
            options={"ordering": ["-created_at", "id"]},
        ),
        migrations.CreateModel(
            name="CompositeWorkflowSessionStep",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("proof_title", models.CharField(blank=True, max_length=255)),
                ("proof_description", models.TextField(blank=True)),
                ("proof_content", models.TextField(blank=True)),
                ("proof_file_path", models.CharField(blank=True, max_length=1024)),
                ("proof_file_name", models.CharField(blank=True, max_length=255)),
                ("proof_mime_type", models.CharField(blank=True, max_length=255)),
                ("proof_file_size", models.PositiveIntegerField(blank=True, null=True)),
                ("proof_submitted_at", models.DateTimeField(blank=True, null=True)),
                ("proof_submitted_by", models.CharField(blank=True, max_length=255)),
                (
                    "status",
                    models.CharField(
                        choices=[("locked", "Locked"), ("active", "Active"), ("completed", "Completed")],
                        default="locked",
                        max_length=16,
                    ),
                ),
                ("is_completed", models.BooleanField(default=False)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("completed_by", models.CharField(blank=True, max_length=255)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "session",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="session_steps",
                        to="composites.compositeworkflowsession",
                    ),
                ),
                (
                    "step",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="session_overrides",
                        to="workflows.step",
                    ),
                ),
            ],
            options={"ordering": ["id"]},
        ),
        migrations.AddConstraint(
            model_name="compositeworkflowsessionstep",
            constraint=models.UniqueConstraint(fields=("session", "step"), name="unique_session_step"),
        ),
    ]
