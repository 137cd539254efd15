"""
Submit for Review Handler.
POST /worker/tasks/{taskId}/submit

Locks the task and hands it to the dispatcher. No money moves here;
the worker is paid when the dispatcher approves.
"""
from reviewflow.auth import get_user_sub, is_worker
from reviewflow.errors import ForbiddenError, ValidationError, WorkflowError
from reviewflow.lifecycle import load_task, submit_for_review
from reviewflow.logging import logger, log_event
from reviewflow.utils import error_response, format_response, get_path_param, parse_task_id


def handler(event, context):
    log_event(event)

    try:
        worker_id = get_user_sub(event)
        if not worker_id:
            return format_response(401, {'error': 'Unauthorized', 'kind': 'unauthorized'})
        if not is_worker(event):
            raise ForbiddenError('Worker role required')

        try:
            task_id = parse_task_id(get_path_param(event, 'taskId'))
        except (TypeError, ValueError):
            raise ValidationError('Missing or invalid taskId')

        task = load_task(task_id)
        if task.responsible_user_id and task.responsible_user_id != worker_id:
            raise ForbiddenError(f'Task {task_id} is assigned to another worker')

        task = submit_for_review(task_id)

        return format_response(200, {
            'message': 'Task submitted for review',
            'taskId': task.task_id,
            'status': task.status,
            'dispatcherId': task.dispatcher_id,
            'originalDeadline': task.original_deadline
        })

    except WorkflowError as e:
        return error_response(e)
    except Exception as e:
        logger.exception(f"Error submitting task for review: {e}")
        return format_response(500, {'error': 'Internal Server Error', 'kind': 'internal'})
