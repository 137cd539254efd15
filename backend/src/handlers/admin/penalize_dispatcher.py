"""
Penalize Dispatcher Handler.
POST /admin/tasks/{taskId}/penalty
Body: { "reason": "Optional reason", "dryRun": false }

Fines the dispatcher of a completed task twice the reward they received.
With ``dryRun`` the amount is returned without charging anything, for
the confirmation prompt.
"""
from reviewflow.auth import current_admin_id
from reviewflow.errors import ValidationError, WorkflowError
from reviewflow.logging import logger, log_event
from reviewflow.penalties import penalize_dispatcher, penalty_preview
from reviewflow.utils import error_response, format_response, get_path_param, parse_body, parse_task_id


def handler(event, context):
    log_event(event)

    try:
        admin_id = current_admin_id(event)

        try:
            task_id = parse_task_id(get_path_param(event, 'taskId'))
        except (TypeError, ValueError):
            raise ValidationError('Missing or invalid taskId')

        body = parse_body(event)
        if body.get('dryRun'):
            return format_response(200, penalty_preview(task_id))

        result = penalize_dispatcher(task_id, admin_id, reason=body.get('reason'))

        response = result.to_dict()
        response['message'] = 'Penalty applied'
        return format_response(200, response)

    except WorkflowError as e:
        return error_response(e)
    except Exception as e:
        logger.exception(f"Error applying dispatcher penalty: {e}")
        return format_response(500, {'error': 'Internal Server Error', 'kind': 'internal'})
