"""
Delete Task Handler.
DELETE /tasks/{taskId}

Reverses the worker's payment for a completed task and detaches the task
from its order before deleting it. Reversal problems come back as
warnings; only a failed delete is an error.
"""
from reviewflow.auth import is_admin
from reviewflow.deletion import delete_task
from reviewflow.errors import ForbiddenError, ValidationError, WorkflowError
from reviewflow.logging import logger, log_event
from reviewflow.utils import error_response, format_response, get_path_param, parse_task_id


def handler(event, context):
    log_event(event)

    try:
        if not is_admin(event):
            raise ForbiddenError('Admin role required')

        try:
            task_id = parse_task_id(get_path_param(event, 'taskId'))
        except (TypeError, ValueError):
            raise ValidationError('Missing or invalid taskId')

        result = delete_task(task_id)

        body = result.to_dict()
        body['message'] = 'Task deleted'
        return format_response(200, body)

    except WorkflowError as e:
        return error_response(e)
    except Exception as e:
        logger.exception(f"Error deleting task: {e}")
        return format_response(500, {'error': 'Internal Server Error', 'kind': 'internal'})
