"""
Reschedule Task Handler.
PUT /tasks/{taskId}/due-date
Body: { "dueDate": "2026-11-01T18:00:00Z" }

Only ``due_date`` moves; the deadline captured at first submission keeps
driving the overdue discount.
"""
from reviewflow.auth import get_user_sub, is_admin, is_dispatcher
from reviewflow.errors import ForbiddenError, ValidationError, WorkflowError
from reviewflow.lifecycle import reschedule_task
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

        due_date = parse_body(event).get('dueDate')
        if not due_date:
            raise ValidationError('Missing dueDate')

        reviewer_id = None if is_admin(event) else get_user_sub(event)
        task = reschedule_task(task_id, due_date, reviewer_id=reviewer_id)

        return format_response(200, {
            'message': 'Task rescheduled',
            'taskId': task.task_id,
            'dueDate': task.due_date,
            'originalDeadline': task.original_deadline
        })

    except WorkflowError as e:
        return error_response(e)
    except Exception as e:
        logger.exception(f"Error rescheduling task: {e}")
        return format_response(500, {'error': 'Internal Server Error', 'kind': 'internal'})
