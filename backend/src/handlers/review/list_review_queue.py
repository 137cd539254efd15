"""
List Review Queue Handler.
GET /dispatcher/tasks[?dispatcherId=...]

Tasks waiting for the calling dispatcher, earliest due date first.
Admins may look at another dispatcher's queue.
"""
from reviewflow.auth import get_user_sub, is_admin, is_dispatcher
from reviewflow.errors import ForbiddenError, WorkflowError
from reviewflow.logging import logger, log_event
from reviewflow.review_queue import build_review_queue
from reviewflow.utils import error_response, format_response, get_query_param


def handler(event, context):
    log_event(event)

    try:
        if not is_dispatcher(event):
            raise ForbiddenError('Dispatcher role required')

        dispatcher_id = get_user_sub(event)
        requested = get_query_param(event, 'dispatcherId')
        if requested and requested != dispatcher_id:
            if not is_admin(event):
                raise ForbiddenError('Only admins can view another dispatcher\'s queue')
            dispatcher_id = requested

        return format_response(200, build_review_queue(dispatcher_id))

    except WorkflowError as e:
        return error_response(e)
    except Exception as e:
        logger.exception(f"Error listing review queue: {e}")
        return format_response(500, {'error': 'Internal Server Error', 'kind': 'internal'})
