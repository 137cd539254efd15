"""
Approve Task Handler.
POST /dispatcher/tasks/{taskId}/approve

Completes a task under review and settles compensation: dispatcher reward
on the base salary, worker payment (discounted when overdue). A worker
payment that fails is returned as a warning; the approval stands.
"""
from reviewflow.auth import get_user_sub, is_admin, is_dispatcher
from reviewflow.errors import ForbiddenError, ValidationError, WorkflowError
from reviewflow.lifecycle import approve_task
from reviewflow.logging import logger, log_event
from reviewflow.utils import error_response, format_response, get_path_param, parse_task_id


def handler(event, context):
    log_event(event)

    try:
        if not is_dispatcher(event):
            raise ForbiddenError('Dispatcher role required')

        try:
            task_id = parse_task_id(get_path_param(event, 'taskId'))
        except (TypeError, ValueError):
            raise ValidationError('Missing or invalid taskId')

        # Admins may approve on behalf of any dispatcher
        reviewer_id = None if is_admin(event) else get_user_sub(event)
        result = approve_task(task_id, reviewer_id=reviewer_id)

        body = result.to_dict()
        body['message'] = 'Task approved' if not result.warnings else 'Task approved with warnings'
        return format_response(200, body)

    except WorkflowError as e:
        return error_response(e)
    except Exception as e:
        logger.exception(f"Error approving task: {e}")
        return format_response(500, {'error': 'Internal Server Error', 'kind': 'internal'})
