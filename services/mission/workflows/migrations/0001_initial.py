# Generated manually for initial schema.
from __future__ import annotations

from django.db import migrations, models
import django.db.models.deletion


STEP_STATUS_CHOICES = [("locked", "Locked"), ("active", "Active"), ("completed", "Completed")]


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Workflow",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                ("total_steps", models.PositiveIntegerField()),
                ("current_step", models.PositiveIntegerField(default=1)),
                ("status", models.CharField(choices=[("active", "Active"), ("completed", "Completed")], default="active", max_length=32)),
                (
                    "priority",
                    models.CharField(
                        choices=[("low", "Low"), ("medium", "Medium"), ("high", "High"), ("critical", "Critical")],
                        default="high",
                        max_length=16,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={"ordering": ["-created_at", "id"]},
        ),
        migrations.CreateModel(
            name="Step",
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
                ("step_number", models.PositiveIntegerField()),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                ("status", models.CharField(choices=STEP_STATUS_CHOICES, default="locked", max_length=16)),
                ("is_completed", models.BooleanField(default=False)),
                ("requires_approval", models.BooleanField(default=False)),
                ("proof_required", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "workflow",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="steps",
                        to="workflows.workflow",
                    ),
                ),
                (
                    "source_workflow",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="workflows.workflow",
                    ),
                ),
            ],
            options={"ordering": ["step_number", "id"]},
        ),
        migrations.AddConstraint(
            model_name="step",
            constraint=models.UniqueConstraint(fields=("workflow", "step_number"), name="unique_workflow_step_number"),
        ),
        migrations.CreateModel(
            name="ActiveWorkflow",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "workflow",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="workflows.workflow",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="Activity",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("step_id", models.BigIntegerField(blank=True, null=True)),
                (
                    "action",
                    models.CharField(
                        choices=[
                            ("step_advanced", "Step advanced"),
                            ("step_completed", "Step completed"),
                            ("proof_submitted", "Proof submitted"),
                            ("proof_cleared", "Proof cleared"),
                            ("workflow_activated", "Workflow activated"),
                        ],
                        max_length=32,
                    ),
                ),
                ("description", models.TextField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "workflow",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="activities",
                        to="workflows.workflow",
                    ),
                ),
            ],
            options={"ordering": ["-created_at", "-id"]},
        ),
    ]
