# Generated manually: composite ownership of template steps.
from __future__ import annotations

from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):
    dependencies = [
        ("workflows", "0001_initial"),
        ("composites", "0001_initial"),
    ]

    operations = [
        migrations.AddField(
            model_name="step",
            name="composite",
            field=models.ForeignKey(
                blank=True,
                null=True,
                on_delete=django.db.models.deletion.CASCADE,
                related_name="template_steps",
                to="composites.compositeworkflow",
            ),
        ),
        migrations.AddConstraint(
            model_name="step",
            constraint=models.UniqueConstraint(fields=("composite", "step_number"), name="unique_composite_step_number"),
        ),
    ]
