"""
Typed workflow errors.

Each error maps to a specific HTTP status code. Handlers catch
``WorkflowError`` subtypes and turn them into API Gateway responses
without knowing which workflow step raised them.
"""


class WorkflowError(Exception):
    """Base class for all review workflow errors."""

    status_code = 500
    kind = 'internal'

    def __init__(self, detail: str = 'Internal error'):
        self.detail = detail
        super().__init__(detail)

    def to_dict(self) -> dict:
        return {'error': self.detail, 'kind': self.kind}


class ValidationError(WorkflowError):
    """Malformed input, rejected before any write (400)."""

    status_code = 400
    kind = 'validation'


class ForbiddenError(WorkflowError):
    """Caller lacks the role for this action (403)."""

    status_code = 403
    kind = 'forbidden'


class NotFoundError(WorkflowError):
    """Task, user, order or setting missing (404)."""

    status_code = 404
    kind = 'not_found'


class InvalidTransitionError(WorkflowError):
    """Task is not in a status the requested action accepts (409)."""

    status_code = 409
    kind = 'invalid_transition'


class AlreadySettledError(WorkflowError):
    """An at-most-once guard has already fired (409)."""

    status_code = 409
    kind = 'already_settled'


class NotEligibleError(WorkflowError):
    """Guard precondition not met, e.g. no reward to penalize against (409)."""

    status_code = 409
    kind = 'not_eligible'


class StoreError(WorkflowError):
    """A DynamoDB call failed; the message is passed through verbatim (502)."""

    status_code = 502
    kind = 'store'


class ConditionFailedError(StoreError):
    """A conditional write lost against the current item state."""

    status_code = 409
    kind = 'condition_failed'


class PartiallyAppliedError(WorkflowError):
    """Some writes of a sequence landed and could not be undone (500)."""

    kind = 'partially_applied'

    def __init__(self, detail: str, applied_steps=None):
        super().__init__(detail)
        self.applied_steps = list(applied_steps or [])

    def to_dict(self) -> dict:
        body = super().to_dict()
        body['appliedSteps'] = self.applied_steps
        return body
