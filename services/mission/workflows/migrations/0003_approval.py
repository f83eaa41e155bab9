# Generated manually: step approvals.
from __future__ import annotations

from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):
    dependencies = [
        ("workflows", "0002_step_composite"),
    ]

    operations = [
        migrations.CreateModel(
            name="Approval",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("approved", "Approved"),
                            ("rejected", "Rejected"),
                            ("changes_requested", "Changes requested"),
                        ],
                        default="pending",
                        max_length=32,
                    ),
                ),
                ("requested_by", models.CharField(blank=True, max_length=255)),
                ("responded_by", models.CharField(blank=True, max_length=255)),
                ("comments", models.TextField(blank=True)),
                ("requested_at", models.DateTimeField(auto_now_add=True)),
                ("responded_at", models.DateTimeField(blank=True, null=True)),
                (
                    "step",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="approvals",
                        to="workflows.step",
                    ),
                ),
            ],
            options={"ordering": ["-requested_at", "-id"]},
        ),
        migrations.AlterField(
            model_name="activity",
            name="action",
            field=models.CharField(
                choices=[
                    ("step_advanced", "Step advanced"),
                    ("step_completed", "Step completed"),
                    ("proof_submitted", "Proof submitted"),
                    ("proof_cleared", "Proof cleared"),
                    ("workflow_activated", "Workflow activated"),
                    ("approval_requested", "Approval requested"),
                    ("approval_responded", "Approval responded"),
                ],
                max_length=32,
            ),
        ),
    ]
