"""Tests for the workflow progression engine and its API."""
from __future__ import annotations

from typing import List
from unittest import mock

from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from . import services
from .exceptions import (
    Conflict,
    InvalidTransition,
    StepNotCompleted,
    ValidationError,
    WorkflowComplete,
)
from .models import Activity, ActiveWorkflow, Approval, Step, Workflow
from .state_machine import StepStatus, check_transition, initial_status


def make_workflow(total_steps: int = 3, current_step: int = 1, with_steps: bool = True, **step_kwargs) -> Workflow:
    workflow = Workflow.objects.create(
        name="Core Platform Launch", total_steps=total_steps, current_step=current_step
    )
    if with_steps:
        for number in range(1, total_steps + 1):
            step = Step(
                workflow=workflow,
                step_number=number,
                name=f"Phase {number}",
                status=initial_status(number, current_step),
                **step_kwargs,
            )
            if step.status == StepStatus.COMPLETED:
                step.mark_completed()
            step.save()
    return workflow


class StepStateMachineTests(SimpleTestCase):
    def test_linear_transitions_are_allowed(self) -> None:
        check_transition(StepStatus.LOCKED, StepStatus.ACTIVE, predecessor_completed=True)
        check_transition(StepStatus.ACTIVE, StepStatus.COMPLETED, predecessor_completed=True)

    def test_skipping_and_regressing_are_rejected(self) -> None:
        with self.assertRaises(InvalidTransition):
            check_transition(StepStatus.LOCKED, StepStatus.COMPLETED, predecessor_completed=True)
        with self.assertRaises(InvalidTransition):
            check_transition(StepStatus.COMPLETED, StepStatus.ACTIVE, predecessor_completed=True)
        with self.assertRaises(InvalidTransition):
            check_transition(StepStatus.ACTIVE, StepStatus.LOCKED, predecessor_completed=True)

    def test_activation_needs_completed_predecessor(self) -> None:
        with self.assertRaises(InvalidTransition):
            check_transition(StepStatus.LOCKED, StepStatus.ACTIVE, predecessor_completed=False)

    def test_proof_gate(self) -> None:
        with self.assertRaises(InvalidTransition):
            check_transition(
                StepStatus.ACTIVE,
                StepStatus.COMPLETED,
                predecessor_completed=True,
                requires_approval=True,
                proof_required=True,
                proof_attached=False,
            )
        # Either flag alone does not gate completion.
        check_transition(
            StepStatus.ACTIVE,
            StepStatus.COMPLETED,
            predecessor_completed=True,
            requires_approval=False,
            proof_required=True,
        )
        check_transition(
            StepStatus.ACTIVE,
            StepStatus.COMPLETED,
            predecessor_completed=True,
            requires_approval=True,
            proof_required=True,
            proof_attached=True,
        )
        check_transition(
            StepStatus.ACTIVE,
            StepStatus.COMPLETED,
            predecessor_completed=True,
            requires_approval=True,
            proof_required=True,
            approved=True,
        )


class ProgressionEngineTests(TestCase):
    def assert_invariants(self, workflow_id: int) -> None:
        workflow = Workflow.objects.get(pk=workflow_id)
        self.assertGreaterEqual(workflow.current_step, 1)
        self.assertLessEqual(workflow.current_step, workflow.total_steps)
        steps: List[Step] = list(workflow.steps.order_by("step_number"))
        active = [step.step_number for step in steps if step.status == StepStatus.ACTIVE]
        current = next((step for step in steps if step.step_number == workflow.current_step), None)
        if current is None or current.status == StepStatus.COMPLETED:
            # Completed but not yet advanced past, or no row at this position.
            self.assertEqual(active, [])
        else:
            self.assertEqual(active, [workflow.current_step])
        for step in steps:
            if step.step_number < workflow.current_step:
                self.assertEqual(step.status, StepStatus.COMPLETED)
            elif step.step_number > workflow.current_step:
                self.assertEqual(step.status, StepStatus.LOCKED)

    def test_advance_without_step_rows_is_ungated(self) -> None:
        workflow = make_workflow(total_steps=3, with_steps=False)

        advanced = services.advance(workflow.pk)

        self.assertEqual(advanced.current_step, 2)
        self.assertEqual(Activity.objects.filter(workflow=workflow, action=Activity.STEP_ADVANCED).count(), 1)

    def test_advance_requires_completed_current_step(self) -> None:
        workflow = make_workflow()

        with self.assertRaises(StepNotCompleted):
            services.advance(workflow.pk)

        workflow.refresh_from_db()
        self.assertEqual(workflow.current_step, 1)
        self.assert_invariants(workflow.pk)

    def test_complete_then_advance_activates_next_step(self) -> None:
        workflow = make_workflow()
        first = workflow.steps.get(step_number=1)

        services.complete_step(first.pk)
        advanced = services.advance(workflow.pk)

        self.assertEqual(advanced.current_step, 2)
        statuses = [step.status for step in advanced.steps.all()]
        self.assertEqual(statuses, [StepStatus.COMPLETED, StepStatus.ACTIVE, StepStatus.LOCKED])
        self.assert_invariants(workflow.pk)

    def test_second_advance_without_completion_fails(self) -> None:
        workflow = make_workflow()
        services.complete_step(workflow.steps.get(step_number=1).pk)
        services.advance(workflow.pk)

        with self.assertRaises(StepNotCompleted):
            services.advance(workflow.pk)

        workflow.refresh_from_db()
        self.assertEqual(workflow.current_step, 2)

    def test_advance_past_final_step_signals_completion(self) -> None:
        workflow = make_workflow(total_steps=2, current_step=2)
        final = workflow.steps.get(step_number=2)

        services.complete_step(final.pk)
        with self.assertRaises(WorkflowComplete):
            services.advance(workflow.pk)

        workflow.refresh_from_db()
        self.assertEqual(workflow.current_step, 2)
        self.assertEqual(workflow.status, Workflow.COMPLETED)
        self.assertFalse(workflow.steps.filter(status=StepStatus.ACTIVE).exists())

    def test_completing_a_locked_step_fails_without_writes(self) -> None:
        workflow = make_workflow()
        locked = workflow.steps.get(step_number=3)

        with self.assertRaises(InvalidTransition):
            services.complete_step(locked.pk)

        locked.refresh_from_db()
        self.assertEqual(locked.status, StepStatus.LOCKED)
        self.assertIsNone(locked.completed_at)

    def test_proof_gate_on_workflow_step(self) -> None:
        workflow = make_workflow(requires_approval=True, proof_required=True)
        first = workflow.steps.get(step_number=1)

        with self.assertRaises(InvalidTransition):
            services.complete_step(first.pk)

        services.submit_step_proof(first.pk, {"proof_content": "Signed-off checklist"}, "ops-lead")
        completed = services.complete_step(first.pk)

        self.assertEqual(completed.status, StepStatus.COMPLETED)
        self.assertTrue(completed.is_completed)
        self.assertIsNotNone(completed.completed_at)
        self.assertEqual(completed.proof_submitted_by, "ops-lead")

    def test_lost_advance_race_raises_conflict(self) -> None:
        workflow = make_workflow(with_steps=False)
        stale = mock.Mock()
        stale.update.return_value = 0

        with mock.patch.object(Workflow.objects, "filter", return_value=stale):
            with self.assertRaises(Conflict):
                services.advance(workflow.pk)

        workflow.refresh_from_db()
        self.assertEqual(workflow.current_step, 1)

    def test_new_workflow_has_exactly_one_active_step(self) -> None:
        workflow = make_workflow(total_steps=4, current_step=2)

        self.assert_invariants(workflow.pk)
        active = workflow.steps.filter(status=StepStatus.ACTIVE)
        self.assertEqual(list(active.values_list("step_number", flat=True)), [2])

    def test_nothing_is_active_between_complete_and_advance(self) -> None:
        workflow = make_workflow()
        services.complete_step(workflow.steps.get(step_number=1).pk)

        self.assertFalse(workflow.steps.filter(status=StepStatus.ACTIVE).exists())
        self.assert_invariants(workflow.pk)

        services.advance(workflow.pk)
        self.assertEqual(workflow.steps.filter(status=StepStatus.ACTIVE).count(), 1)
        self.assert_invariants(workflow.pk)

    def test_ungated_advance_into_final_position_completes_workflow(self) -> None:
        workflow = make_workflow(total_steps=2, with_steps=False)

        advanced = services.advance(workflow.pk)

        self.assertEqual(advanced.current_step, 2)
        self.assertEqual(advanced.status, Workflow.COMPLETED)
        with self.assertRaises(WorkflowComplete):
            services.advance(workflow.pk)

    def test_final_position_without_row_is_marked_completed(self) -> None:
        workflow = make_workflow(total_steps=1, with_steps=False)

        with self.assertRaises(WorkflowComplete):
            services.advance(workflow.pk)

        workflow.refresh_from_db()
        self.assertEqual(workflow.status, Workflow.COMPLETED)
        self.assertEqual(workflow.current_step, 1)

    def test_growing_a_completed_workflow_reopens_it(self) -> None:
        workflow = make_workflow(total_steps=1)
        services.complete_step(workflow.steps.get().pk)
        workflow.refresh_from_db()
        self.assertEqual(workflow.status, Workflow.COMPLETED)

        reopened = services.update_workflow(workflow.pk, {"total_steps": 3})
        self.assertEqual(reopened.status, Workflow.ACTIVE)

        advanced = services.advance(workflow.pk)
        self.assertEqual(advanced.current_step, 2)
        self.assertEqual(advanced.status, Workflow.ACTIVE)


class ActiveWorkflowTests(TestCase):
    def test_switching_keeps_a_single_active_workflow(self) -> None:
        first = make_workflow(with_steps=False)
        second = make_workflow(with_steps=False)

        services.set_active(first.pk)
        services.set_active(second.pk)

        self.assertEqual(services.get_active().pk, second.pk)
        self.assertEqual(services.active_workflow_id(), second.pk)

    def test_deleting_active_workflow_clears_pointer(self) -> None:
        first = make_workflow(with_steps=False)
        make_workflow(with_steps=False)
        services.set_active(first.pk)

        services.delete_workflow(first.pk)

        self.assertIsNone(services.get_active())

    def test_activating_the_same_workflow_twice_is_idempotent(self) -> None:
        first = make_workflow(with_steps=False)
        make_workflow(with_steps=False)

        services.set_active(first.pk)
        services.set_active(first.pk)

        self.assertEqual(ActiveWorkflow.objects.count(), 1)
        self.assertEqual(services.active_workflow_id(), first.pk)
        self.assertEqual(
            Activity.objects.filter(action=Activity.WORKFLOW_ACTIVATED).count(), 1
        )


class ApprovalTests(TestCase):
    def setUp(self) -> None:
        self.workflow = make_workflow(requires_approval=True, proof_required=True)
        self.first = self.workflow.steps.get(step_number=1)

    def test_approval_opens_the_completion_gate(self) -> None:
        approval = services.request_approval(self.first.pk, requested_by="ops-lead")
        self.assertEqual(approval.status, Approval.PENDING)

        with self.assertRaises(InvalidTransition):
            services.complete_step(self.first.pk)

        services.respond_to_approval(approval.pk, Approval.APPROVED, responded_by="director")
        completed = services.complete_step(self.first.pk)

        self.assertEqual(completed.status, StepStatus.COMPLETED)
        approval.refresh_from_db()
        self.assertIsNotNone(approval.responded_at)
        self.assertEqual(approval.responded_by, "director")

    def test_rejected_approval_keeps_the_gate_closed(self) -> None:
        approval = services.request_approval(self.first.pk)
        services.respond_to_approval(approval.pk, Approval.REJECTED, comments="Missing evidence")

        with self.assertRaises(InvalidTransition):
            services.complete_step(self.first.pk)

    def test_request_rules(self) -> None:
        services.request_approval(self.first.pk)
        with self.assertRaises(Conflict):
            services.request_approval(self.first.pk)

        with self.assertRaises(InvalidTransition):
            services.request_approval(self.workflow.steps.get(step_number=2).pk)

        plain = make_workflow().steps.get(step_number=1)
        with self.assertRaises(ValidationError):
            services.request_approval(plain.pk)

    def test_decision_is_final(self) -> None:
        approval = services.request_approval(self.first.pk)
        services.respond_to_approval(approval.pk, Approval.CHANGES_REQUESTED)

        with self.assertRaises(InvalidTransition):
            services.respond_to_approval(approval.pk, Approval.APPROVED)


class WorkflowApiTests(TestCase):
    def setUp(self) -> None:
        self.client = APIClient()

    def test_create_workflow(self) -> None:
        payload = {
            "name": "Launch Sequence",
            "description": "Ship the platform",
            "total_steps": 3,
            "steps": [
                {"name": "Discovery"},
                {"name": "Build", "requires_approval": True, "proof_required": True},
                {"name": "Release"},
            ],
        }
        response = self.client.post(reverse("workflow-list"), payload, format="json")
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["current_step"], 1)
        self.assertFalse(response.data["is_active"])
        self.assertEqual(
            [step["status"] for step in response.data["steps"]],
            ["active", "locked", "locked"],
        )

        response = self.client.get(reverse("workflow-list"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.data), 1)

    def test_create_rejects_zero_steps(self) -> None:
        response = self.client.post(
            reverse("workflow-list"), {"name": "Empty", "total_steps": 0}, format="json"
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.data["code"], "validation_error")

    def test_active_endpoint(self) -> None:
        response = self.client.get(reverse("workflow-active"))
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.data)

        workflow = make_workflow()
        response = self.client.post(reverse("workflow-activate", args=[workflow.pk]), format="json")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data["is_active"])

        response = self.client.get(reverse("workflow-active"))
        self.assertEqual(response.data["id"], workflow.pk)

        response = self.client.delete(reverse("workflow-detail", args=[workflow.pk]))
        self.assertEqual(response.status_code, 204)
        self.assertIsNone(self.client.get(reverse("workflow-active")).data)
        self.assertFalse(Step.objects.filter(workflow_id=workflow.pk).exists())

    def test_advance_endpoint_reports_error_codes(self) -> None:
        workflow = make_workflow(total_steps=2)

        response = self.client.post(reverse("workflow-advance", args=[workflow.pk]), format="json")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "step_not_completed")

        first = workflow.steps.get(step_number=1)
        response = self.client.post(reverse("step-complete", args=[first.pk]), format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "completed")

        response = self.client.post(reverse("workflow-advance", args=[workflow.pk]), format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["current_step"], 2)

        response = self.client.post(reverse("workflow-advance", args=[999]), format="json")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.data["code"], "not_found")

    def test_proof_endpoint(self) -> None:
        workflow = make_workflow(requires_approval=True, proof_required=True)
        first = workflow.steps.get(step_number=1)

        response = self.client.post(reverse("step-complete", args=[first.pk]), format="json")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "invalid_transition")

        response = self.client.post(
            reverse("step-proof", args=[first.pk]),
            {"proof_content": "Deployment log", "proof_title": "Logs"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertIsNotNone(response.data["proof_submitted_at"])

        response = self.client.post(reverse("step-complete", args=[first.pk]), format="json")
        self.assertEqual(response.status_code, 200)
        self.assertIsNotNone(response.data["completed_at"])

    def test_add_step_and_activities(self) -> None:
        workflow = make_workflow(total_steps=4, current_step=2, with_steps=False)
        response = self.client.post(
            reverse("step-list"),
            {"workflow": workflow.pk, "step_number": 1, "name": "Recon"},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["status"], "completed")

        response = self.client.post(
            reverse("step-list"),
            {"workflow": workflow.pk, "step_number": 5, "name": "Beyond"},
            format="json",
        )
        self.assertEqual(response.status_code, 400)

        self.client.post(reverse("workflow-advance", args=[workflow.pk]), format="json")
        response = self.client.get(reverse("workflow-activities", args=[workflow.pk]))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data[0]["action"], Activity.STEP_ADVANCED)

    def test_extending_a_completed_workflow_over_the_api(self) -> None:
        workflow = make_workflow(total_steps=1)
        self.client.post(reverse("step-complete", args=[workflow.steps.get().pk]), format="json")

        response = self.client.patch(
            reverse("workflow-detail", args=[workflow.pk]), {"total_steps": 3}, format="json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["status"], "active")

        response = self.client.post(reverse("workflow-advance", args=[workflow.pk]), format="json")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data["current_step"], 2)
        self.assertEqual(response.data["status"], "active")

    def test_approval_endpoints(self) -> None:
        workflow = make_workflow(requires_approval=True, proof_required=True)
        first = workflow.steps.get(step_number=1)

        response = self.client.post(
            reverse("step-request-approval", args=[first.pk]), {"requested_by": "ops-lead"}, format="json"
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.data["status"], "pending")
        approval_id = response.data["id"]

        response = self.client.get(reverse("step-approvals", args=[first.pk]))
        self.assertEqual([approval["id"] for approval in response.data], [approval_id])

        response = self.client.patch(
            reverse("approval-detail", args=[approval_id]), {"status": "pending"}, format="json"
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.patch(
            reverse("approval-detail", args=[approval_id]),
            {"status": "approved", "responded_by": "director"},
            format="json",
        )
        self.assertEqual(response.status_code, 200)
        self.assertIsNotNone(response.data["responded_at"])

        response = self.client.patch(
            reverse("approval-detail", args=[approval_id]), {"status": "rejected"}, format="json"
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data["code"], "invalid_transition")

        response = self.client.get(reverse("approval-detail", args=[approval_id]))
        self.assertEqual(response.data["status"], "approved")

        response = self.client.post(reverse("step-complete", args=[first.pk]), format="json")
        self.assertEqual(response.status_code, 200)

    def test_ping(self) -> None:
        response = self.client.get(reverse("ping"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data, {"status": "ok", "database": "connected"})
