"""
Row-level store contracts used by the review workflows.

Every function is a single DynamoDB call (or one transaction) so the
workflows control ordering and failure handling themselves.

Tables (all names come from config):
- Tasks            key ``taskId``   GSIs byDispatcher (dispatcherId), byOrder (orderId)
- Users            key ``userId``
- Orders           key ``orderId``  (``status`` holds the current stage)
- AutomationSettings key ``stageId``
- PenaltyLog       key ``penaltyId``
- WorkerCredits    key ``taskId``   (one credit per task)
"""
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from boto3.dynamodb.conditions import Attr, ConditionBase, Key
from botocore.exceptions import ClientError

from . import dynamo
from .config import config
from .errors import ConditionFailedError, NotFoundError, StoreError
from .logging import logger
from .models import PenaltyLogEntry, TaskStatus
from .utils import to_decimal, to_iso, utc_now


# =============================================================================
# TASKS
# =============================================================================

def get_task(task_id: int) -> Optional[Dict[str, Any]]:
    return dynamo.get_item(config.TASKS_TABLE, {'taskId': task_id})


def update_task(
    task_id: int,
    fields: Optional[Dict[str, Any]] = None,
    remove: Optional[Iterable[str]] = None,
    condition: Optional[ConditionBase] = None
) -> Dict[str, Any]:
    """
    Partially update a task row.

    ``fields`` are SET, ``remove`` attributes are dropped. The write always
    requires the task to exist; ``condition`` (see ``reviewflow.conditions``)
    must hold as well. A failed condition raises ConditionFailedError.

    Returns:
        The task item after the update
    """
    names: Dict[str, str] = {}
    values: Dict[str, Any] = {}
    set_parts: List[str] = []

    for i, (attr, value) in enumerate((fields or {}).items()):
        names[f'#f{i}'] = attr
        values[f':f{i}'] = value
        set_parts.append(f'#f{i} = :f{i}')

    remove_parts = []
    for i, attr in enumerate(remove or []):
        names[f'#r{i}'] = attr
        remove_parts.append(f'#r{i}')

    if not set_parts and not remove_parts:
        raise ValueError('update_task needs at least one attribute to change')

    expression = ''
    if set_parts:
        expression = 'SET ' + ', '.join(set_parts)
    if remove_parts:
        expression += (' ' if expression else '') + 'REMOVE ' + ', '.join(remove_parts)

    guard = Attr('taskId').exists()
    if condition is not None:
        guard = guard & condition

    return dynamo.update_item(
        config.TASKS_TABLE,
        key={'taskId': task_id},
        update_expression=expression,
        expression_values=values or None,
        expression_names=names,
        condition_expression=guard,
        return_values='ALL_NEW'
    )


def delete_task(task_id: int) -> None:
    dynamo.delete_item(config.TASKS_TABLE, {'taskId': task_id})


def list_review_queue(dispatcher_id: str) -> List[Dict[str, Any]]:
    """Tasks assigned to a dispatcher that are waiting for review."""
    return dynamo.query(
        config.TASKS_TABLE,
        index_name=config.TASKS_BY_DISPATCHER_INDEX,
        key_condition=Key('dispatcherId').eq(dispatcher_id),
        filter_expression=Attr('status').eq(TaskStatus.UNDER_REVIEW)
    )


def list_order_task_ids(order_id: int) -> List[int]:
    """Task ids of an order derived from the byOrder index."""
    items = dynamo.query(
        config.TASKS_TABLE,
        index_name=config.TASKS_BY_ORDER_INDEX,
        key_condition=Key('orderId').eq(order_id)
    )
    return [int(item['taskId']) for item in items]


# =============================================================================
# USERS
# =============================================================================

def get_user(user_id: str) -> Optional[Dict[str, Any]]:
    """Return ``{userId, salary, completedTasks, ...}`` or None."""
    return dynamo.get_item(config.USERS_TABLE, {'userId': user_id})


def add_to_user_salary(user_id: str, delta: Decimal) -> Decimal:
    """
    Atomically add ``delta`` (may be negative) to a user's salary.

    Raises:
        NotFoundError: the user row does not exist

    Returns:
        The new salary
    """
    try:
        attrs = dynamo.update_item(
            config.USERS_TABLE,
            key={'userId': user_id},
            update_expression='ADD salary :delta',
            expression_values={':delta': delta},
            condition_expression='attribute_exists(userId)',
            return_values='UPDATED_NEW'
        )
    except ConditionFailedError:
        raise NotFoundError(f'User {user_id} not found')
    return to_decimal(attrs.get('salary')) or Decimal('0')


def set_user_salary(
    user_id: str,
    new_salary: Decimal,
    completed_tasks: Optional[List[Dict[str, Any]]] = None,
    expected_salary: Optional[Decimal] = None
) -> None:
    """
    Overwrite a user's salary (and optionally the completed-task list).

    With ``expected_salary`` the write only lands if the stored salary is
    still that value, which serializes read-modify-write cycles on the row.
    """
    values: Dict[str, Any] = {':salary': new_salary}
    expression = 'SET salary = :salary'
    if completed_tasks is not None:
        expression += ', completedTasks = :completed'
        values[':completed'] = completed_tasks

    condition = 'attribute_exists(userId)'
    if expected_salary is not None:
        values[':expected'] = expected_salary
        if expected_salary == 0:
            condition += ' AND (attribute_not_exists(salary) OR salary = :expected)'
        else:
            condition += ' AND salary = :expected'

    dynamo.update_item(
        config.USERS_TABLE,
        key={'userId': user_id},
        update_expression=expression,
        expression_values=values,
        condition_expression=condition
    )


def credit_worker_for_task(worker_id: str, task_id: int, payment: Decimal, has_penalty: bool) -> bool:
    """
    Pay a worker for a task and record it in their completed-task list.

    Runs as one transaction: a WorkerCredits row keyed by task id (which
    makes the credit at-most-once per task) plus the salary increment and
    list append on the user row.

    Returns:
        True if the worker was credited, False if this task was already credited

    Raises:
        NotFoundError: the worker row does not exist
        StoreError: any other failure
    """
    timestamp = to_iso(utc_now())
    entry = {
        'task_id': task_id,
        'payment': payment,
        'has_penalty': has_penalty,
        'completed_at': timestamp
    }

    try:
        dynamo.transact_write([
            # Idempotency key
            {
                'Put': {
                    'TableName': config.WORKER_CREDITS_TABLE,
                    'Item': dynamo.serialize({
                        'taskId': task_id,
                        'workerId': worker_id,
                        'payment': payment,
                        'hasPenalty': has_penalty,
                        'createdAt': timestamp
                    }),
                    'ConditionExpression': 'attribute_not_exists(taskId)'
                }
            },
            # Salary + completed task entry
            {
                'Update': {
                    'TableName': config.USERS_TABLE,
                    'Key': dynamo.serialize({'userId': worker_id}),
                    'UpdateExpression': (
                        'ADD salary :payment '
                        'SET completedTasks = list_append(if_not_exists(completedTasks, :empty), :entry)'
                    ),
                    'ConditionExpression': 'attribute_exists(userId)',
                    'ExpressionAttributeValues': dynamo.serialize({
                        ':payment': payment,
                        ':empty': [],
                        ':entry': [entry]
                    })
                }
            }
        ])
    except ClientError as e:
        error = e.response.get('Error', {})
        if error.get('Code') == 'TransactionCanceledException':
            reasons = [r.get('Code') for r in e.response.get('CancellationReasons', [])]
            if reasons and reasons[0] == 'ConditionalCheckFailed':
                logger.info(f"Task {task_id} already credited, skipping worker {worker_id}")
                return False
            if len(reasons) > 1 and reasons[1] == 'ConditionalCheckFailed':
                raise NotFoundError(f'Worker {worker_id} not found')
        logger.error(f"Worker credit failed for task {task_id}: {error}")
        raise StoreError(f"Worker credit for task {task_id} failed: {error.get('Message', str(e))}") from e

    logger.info(f"Credited worker {worker_id} with {payment} for task {task_id} (penalty={has_penalty})")
    return True


# =============================================================================
# ORDERS & AUTOMATION
# =============================================================================

def get_order(order_id: int) -> Optional[Dict[str, Any]]:
    """Return ``{orderId, status, title, clientName, taskIds, ...}`` or None."""
    return dynamo.get_item(config.ORDERS_TABLE, {'orderId': order_id})


def get_order_stage(order_id: int) -> Optional[str]:
    order = get_order(order_id)
    if not order:
        return None
    return order.get('status')


def get_automation_setting(stage_id: str) -> Optional[Dict[str, Any]]:
    """
    Default dispatcher for an order stage.

    Returns:
        ``{'dispatcher_id', 'dispatcher_percentage'}`` or None when the stage
        has no complete setting
    """
    item = dynamo.get_item(config.AUTOMATION_SETTINGS_TABLE, {'stageId': stage_id})
    if not item or not item.get('dispatcherId'):
        return None
    return {
        'dispatcher_id': item['dispatcherId'],
        'dispatcher_percentage': to_decimal(item.get('dispatcherPercentage'))
    }


def get_order_task_list(order_id: int) -> Optional[List[int]]:
    """Denormalized task-id list of an order, None when the order is missing."""
    order = get_order(order_id)
    if order is None:
        return None
    return [int(task_id) for task_id in order.get('taskIds') or []]


def set_order_task_list(order_id: int, task_ids: List[int], expected: Optional[List[int]] = None) -> None:
    """Overwrite an order's task-id list, optionally only if it still equals ``expected``."""
    values: Dict[str, Any] = {':ids': task_ids}
    condition = 'attribute_exists(orderId)'
    if expected is not None:
        values[':expected'] = expected
        if expected:
            condition += ' AND taskIds = :expected'
        else:
            condition += ' AND (attribute_not_exists(taskIds) OR taskIds = :expected)'

    dynamo.update_item(
        config.ORDERS_TABLE,
        key={'orderId': order_id},
        update_expression='SET taskIds = :ids',
        expression_values=values,
        condition_expression=condition
    )


# =============================================================================
# PENALTY LOG
# =============================================================================

def append_penalty_log(entry: PenaltyLogEntry) -> None:
    dynamo.put_item(
        config.PENALTY_LOG_TABLE,
        entry.to_item(),
        condition_expression='attribute_not_exists(penaltyId)'
    )
