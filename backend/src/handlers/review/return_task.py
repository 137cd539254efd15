"""
Return Task Handler.
POST /dispatcher/tasks/{taskId}/return
Body: { "comment": "What needs to be fixed" }
"""
from reviewflow.auth import get_user_sub, is_admin, is_dispatcher
from reviewflow.errors import ForbiddenError, ValidationError, WorkflowError
from reviewflow.lifecycle import return_for_rework
from reviewflow.logging import logger, log_event
from reviewflow.utils import error_response, format_response, get_path_param, parse_body, parse_task_id


def handler(event, context):
    log_event(event)

    try:
        if not is_dispatcher(event):
            raise ForbiddenError('Dispatcher role required')

        try:
            task_id = parse_task_id(get_path_param(event, 'taskId'))
        except (TypeError, ValueError):
            raise ValidationError('Missing or invalid taskId')

        body = parse_body(event)
        reviewer_id = None if is_admin(event) else get_user_sub(event)
        task = return_for_rework(task_id, body.get('comment'), reviewer_id=reviewer_id)
        latest = task.review_returns[-1]

        return format_response(200, {
            'message': 'Task returned for rework',
            'taskId': task.task_id,
            'status': task.status,
            'returnNumber': latest.return_number,
            'returnsCount': task.returns_count
        })

    except WorkflowError as e:
        return error_response(e)
    except Exception as e:
        logger.exception(f"Error returning task: {e}")
        return format_response(500, {'error': 'Internal Server Error', 'kind': 'internal'})
