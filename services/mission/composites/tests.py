"""Tests for composite workflows and session-scoped progress."""
from __future__ import annotations

from typing import List
from unittest import mock

from django.db import IntegrityError
from django.test import TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from workflows.exceptions import Conflict, InvalidTransition, StepNotInComposite
from workflows.models import Step, Workflow
from workflows.state_machine import StepStatus

from . import services
from .models import CompositeWorkflowItem, CompositeWorkflowSessionStep
from .resolver import default_status, order_entries, resolve_session_steps


def make_source_steps(count: int = 3, **step_kwargs) -> List[Step]:
    workflow = Workflow.objects.create(name="Field Ops", total_steps=count)
    return [
        Step.objects.create(
            workflow=workflow,
            step_number=number,
            name=f"Objective {number}",
            status=StepStatus.ACTIVE if number == 1 else StepStatus.LOCKED,
            **step_kwargs,
        )
        for number in range(1, count + 1)
    ]


def statuses(view: services.SessionView) -> List[str]:
    return [entry.status for entry in view.steps]


class ResolverTests(TestCase):
    def test_default_status(self) -> None:
        self.assertEqual(default_status(0, None), StepStatus.ACTIVE)
        self.assertEqual(default_status(1, StepStatus.COMPLETED), StepStatus.ACTIVE)
        self.assertEqual(default_status(1, StepStatus.ACTIVE), StepStatus.LOCKED)
        self.assertEqual(default_status(2, StepStatus.LOCKED), StepStatus.LOCKED)
        self.assertEqual(default_status(1, StepStatus.COMPLETED, frontier_seen=True), StepStatus.LOCKED)

    def test_only_the_first_untouched_step_after_completed_work_is_active(self) -> None:
        steps = [Step(pk=pk, step_number=pk, name=f"Objective {pk}") for pk in (1, 2, 3)]
        items = [
            CompositeWorkflowItem(pk=10 + index, order_index=index, step=step)
            for index, step in enumerate(steps)
        ]
        # Step 1 was inserted in front of work the session had already finished.
        overrides = {2: CompositeWorkflowSessionStep(step_id=2, status=StepStatus.COMPLETED)}

        resolved = resolve_session_steps(order_entries(items), overrides)

        self.assertEqual(
            [entry.status for entry in resolved],
            [StepStatus.ACTIVE, StepStatus.COMPLETED, StepStatus.LOCKED],
        )

    def test_stored_active_step_locks_untouched_steps(self) -> None:
        steps = [Step(pk=pk, step_number=pk, name=f"Objective {pk}") for pk in (1, 2)]
        items = [
            CompositeWorkflowItem(pk=10 + index, order_index=index, step=step)
            for index, step in enumerate(steps)
        ]
        overrides = {2: CompositeWorkflowSessionStep(step_id=2, status=StepStatus.ACTIVE)}

        resolved = resolve_session_steps(order_entries(items), overrides)

        self.assertEqual([entry.status for entry in resolved], [StepStatus.LOCKED, StepStatus.ACTIVE])


class CompositeSessionTests(TestCase):
    def setUp(self) -> None:
        sources = make_source_steps()
        self.composite = services.create_composite(
            name="Joint Operation", step_ids=[step.pk for step in sources]
        )
        self.template_ids = [item.step_id for item in self.composite.items.all()]

    def complete(self, session_id: int, step_id: int) -> services.SessionView:
        return services.submit_session_step(session_id, step_id, StepStatus.COMPLETED)

    def test_new_session_has_no_override_rows(self) -> None:
        session = services.create_session(self.composite.pk, name="Alpha")

        view = services.get_session_view(session.pk)

        self.assertEqual(statuses(view), ["active", "locked", "locked"])
        self.assertFalse(CompositeWorkflowSessionStep.objects.filter(session=session).exists())
        self.assertEqual(view.progress, {"completed": 0, "total": 3})

    def test_sessions_progress_independently(self) -> None:
        session_a = services.create_session(self.composite.pk, name="A")
        session_b = services.create_session(self.composite.pk, name="B")
        s1, s2, _ = self.template_ids

        self.complete(session_a.pk, s1)
        view_a = self.complete(session_a.pk, s2)
        view_b = services.get_session_view(session_b.pk)

        self.assertEqual(statuses(view_a), ["completed", "completed", "active"])
        self.assertEqual(statuses(view_b), ["active", "locked", "locked"])
        for template in Step.objects.filter(pk__in=self.template_ids):
            self.assertFalse(template.is_completed)
            self.assertIsNone(template.completed_at)

    def test_skipping_ahead_is_rejected(self) -> None:
        session = services.create_session(self.composite.pk)

        with self.assertRaises(InvalidTransition):
            self.complete(session.pk, self.template_ids[2])

        self.assertFalse(CompositeWorkflowSessionStep.objects.filter(session=session).exists())

    def test_completed_step_is_terminal(self) -> None:
        session = services.create_session(self.composite.pk)
        self.complete(session.pk, self.template_ids[0])

        with self.assertRaises(InvalidTransition):
            self.complete(session.pk, self.template_ids[0])
        with self.assertRaises(InvalidTransition):
            services.submit_session_step(session.pk, self.template_ids[0], StepStatus.ACTIVE)

    def test_foreign_step_is_rejected(self) -> None:
        session = services.create_session(self.composite.pk)
        foreign = make_source_steps(1)[0]

        with self.assertRaises(StepNotInComposite):
            self.complete(session.pk, foreign.pk)

    def test_proof_gate_in_session(self) -> None:
        sources = make_source_steps(2, requires_approval=True, proof_required=True)
        composite = services.create_composite(name="Audited", step_ids=[step.pk for step in sources])
        first = composite.items.all()[0].step_id
        session = services.create_session(composite.pk)

        with self.assertRaises(InvalidTransition):
            self.complete(session.pk, first)

        services.submit_session_step(
            session.pk,
            first,
            StepStatus.ACTIVE,
            {"proof_content": "Countersigned report"},
            "auditor",
        )
        view = self.complete(session.pk, first)

        entry = view.steps[0]
        self.assertEqual(entry.status, StepStatus.COMPLETED)
        self.assertIsNotNone(entry.completed_at)
        self.assertEqual(entry.proof["proof_content"], "Countersigned report")
        self.assertEqual(entry.proof["proof_submitted_by"], "auditor")

    def test_copy_composite_clones_templates(self) -> None:
        copy = services.copy_composite(self.composite.pk, name="Joint Operation II")

        copied_ids = [item.step_id for item in copy.items.all()]
        self.assertEqual(len(copied_ids), 3)
        self.assertTrue(set(copied_ids).isdisjoint(self.template_ids))

    def test_deleting_composite_cascades(self) -> None:
        session = services.create_session(self.composite.pk)
        self.complete(session.pk, self.template_ids[0])

        services.delete_composite(self.composite.pk)

        self.assertFalse(CompositeWorkflowSessionStep.objects.exists())
        self.assertFalse(Step.objects.filter(pk__in=self.template_ids).exists())

    def test_step_inserted_ahead_of_finished_work_keeps_one_active(self) -> None:
        session = services.create_session(self.composite.pk)
        s1, s2, _ = self.template_ids
        self.complete(session.pk, s1)
        extra = make_source_steps(1)[0]

        item = services.add_composite_step(self.composite.pk, extra.pk, order_index=-1)
        view = services.get_session_view(session.pk)

        self.assertEqual(statuses(view), ["active", "completed", "locked", "locked"])
        self.assertEqual(statuses(view).count(StepStatus.ACTIVE), 1)
        with self.assertRaises(InvalidTransition):
            self.complete(session.pk, s2)

        view = self.complete(session.pk, item.step_id)
        self.assertEqual(statuses(view), ["completed", "completed", "active", "locked"])

    def test_activating_a_second_step_is_rejected(self) -> None:
        session = services.create_session(self.composite.pk)
        s1, s2, _ = self.template_ids
        self.complete(session.pk, s1)
        services.add_composite_step(self.composite.pk, make_source_steps(1)[0].pk, order_index=-1)

        with self.assertRaises(InvalidTransition):
            services.submit_session_step(session.pk, s2, StepStatus.ACTIVE)

    def test_concurrent_override_write_raises_conflict(self) -> None:
        session = services.create_session(self.composite.pk)

        with mock.patch.object(
            CompositeWorkflowSessionStep, "save", side_effect=IntegrityError("duplicate key")
        ):
            with self.assertRaises(Conflict):
                self.complete(session.pk, self.template_ids[0])

        self.assertFalse(CompositeWorkflowSessionStep.objects.filter(session=session).exists())


class CompositeApiTests(TestCase):
    def setUp(self) -> None:
        self.client = APIClient()
        self.sources = make_source_steps()

    def create_composite(self) -> dict:
        response = self.client.post(
            reverse("composite-list"),
            {"name": "Joint Operation", "step_ids": [step.pk for step in self.sources]},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        return response.data

    def test_create_and_list_composites(self) -> None:
        composite = self.create_composite()
        self.assertEqual([step["order_index"] for step in composite["steps"]], [0, 1, 2])
        self.assertEqual(composite["steps"][0]["workflow_name"], "Field Ops")

        response = self.client.get(reverse("composite-list"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)

    def test_add_step_to_composite(self) -> None:
        composite = self.create_composite()
        response = self.client.post(
            reverse("composite-add-step", args=[composite["id"]]),
            {"step_id": self.sources[0].pk},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["order_index"], 3)

        response = self.client.post(
            reverse("composite-add-step", args=[composite["id"]]),
            {"step_id": self.sources[0].pk, "order_index": 0},
            format="json",
        )
        self.assertEqual(response.status_code, 400)

    def test_session_submit_flow(self) -> None:
        composite = self.create_composite()
        step_ids = [step["id"] for step in composite["steps"]]

        response = self.client.post(
            reverse("composite-session-list"),
            {"composite": composite["id"], "name": "Night shift"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        session_id = response.data["id"]

        response = self.client.post(
            reverse("composite-session-submit-step", args=[session_id, step_ids[0]]),
            {"status": "completed"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            [step["status"] for step in response.data["steps"]],
            ["completed", "active", "locked"],
        )
        self.assertEqual(response.data["progress"], {"completed": 1, "total": 3})

        response = self.client.post(
            reverse("composite-session-submit-step", args=[session_id, step_ids[2]]),
            {"status": "completed"},
            format="json",
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "invalid_transition")

        response = self.client.post(
            reverse("composite-session-submit-step", args=[session_id, self.sources[0].pk]),
            {"status": "completed"},
            format="json",
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.data["code"], "step_not_in_composite")

        response = self.client.get(reverse("composite-session-detail", args=[session_id]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["steps"][1]["status"], "active")

        response = self.client.get(reverse("composite-session-list"), {"composite": composite["id"]})
        self.assertEqual(len(response.data), 1)

        response = self.client.delete(reverse("composite-session-detail", args=[session_id]))
        self.assertEqual(response.status_code, 204)
        response = self.client.get(reverse("composite-session-detail", args=[session_id]))
        self.assertEqual(response.status_code, 404)

    def test_session_proof_can_be_cleared_before_completion(self) -> None:
        composite = self.create_composite()
        first = composite["steps"][0]["id"]
        session = services.create_session(composite["id"])

        response = self.client.post(
            reverse("composite-session-submit-step", args=[session.pk, first]),
            {"status": "active", "proof_content": "Draft evidence"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["steps"][0]["proof_content"], "Draft evidence")

        response = self.client.delete(reverse("composite-session-clear-proof", args=[session.pk, first]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["steps"][0]["proof_content"], "")
        self.assertIsNone(response.data["steps"][0]["proof_submitted_at"])
