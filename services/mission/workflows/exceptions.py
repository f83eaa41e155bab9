"""Error kinds raised by the mission engine.

Each kind carries a stable HTTP status and a machine-readable code so the API
boundary can report it without inspecting the message.
"""
from __future__ import annotations

from rest_framework import status
from rest_framework.exceptions import APIException


class EngineError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "The request could not be processed."
    default_code = "engine_error"


class NotFound(EngineError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Resource not found."
    default_code = "not_found"


class InvalidTransition(EngineError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Illegal step status transition."
    default_code = "invalid_transition"


class StepNotCompleted(EngineError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The current step must be completed before advancing."
    default_code = "step_not_completed"


class WorkflowComplete(EngineError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The workflow is already at its final step."
    default_code = "workflow_complete"


class Conflict(EngineError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "A concurrent update changed this record; reload and retry."
    default_code = "conflict"


class StepNotInComposite(EngineError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "The step is not part of this composite workflow."
    default_code = "step_not_in_composite"


class ValidationError(EngineError):
    default_detail = "Invalid input."
    default_code = "validation_error"
