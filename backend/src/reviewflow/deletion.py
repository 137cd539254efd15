"""
Deletion reversal.

Removing a task undoes what completing it did: the worker's salary is
debited by the task's base salary (floored at zero), the task leaves the
worker's completed-task list and the order's task-id list, and finally
the task row goes away together with its review history.

The reversal steps are best-effort: a failure is logged and reported as a
warning, and the delete still runs. Only the delete itself can fail the
operation.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List

from . import store
from .config import config
from .errors import ConditionFailedError, NotFoundError, WorkflowError
from .lifecycle import load_task
from .logging import logger
from .models import Task, TaskStatus
from .utils import to_decimal


@dataclass
class DeletionResult:
    task_id: int
    deleted: bool
    salary_reversed: Decimal = Decimal('0')
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'taskId': self.task_id,
            'deleted': self.deleted,
            'salaryReversed': self.salary_reversed,
            'warnings': self.warnings,
        }


def _entry_task_id(entry: Any):
    if isinstance(entry, dict):
        raw = entry.get('task_id', entry.get('taskId'))
    else:
        raw = entry
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def reverse_worker_salary(task: Task) -> Decimal:
    """
    Debit the worker for a deleted completed task.

    Uses a conditional write on the salary just read and retries when
    another workflow changed it in between.

    Returns:
        The amount actually taken off the worker's salary
    """
    worker_id = task.responsible_user_id
    attempts = max(1, config.SALARY_UPDATE_RETRIES)

    for attempt in range(1, attempts + 1):
        user = store.get_user(worker_id)
        if user is None:
            raise NotFoundError(f'Worker {worker_id} not found')

        current = to_decimal(user.get('salary')) or Decimal('0')
        new_salary = max(Decimal('0'), current - task.salary)
        remaining = [
            entry for entry in user.get('completedTasks') or []
            if _entry_task_id(entry) != task.task_id
        ]

        try:
            store.set_user_salary(worker_id, new_salary, completed_tasks=remaining, expected_salary=current)
        except ConditionFailedError:
            logger.info(f"Salary of worker {worker_id} changed concurrently (attempt {attempt}/{attempts})")
            continue

        logger.info(f"Worker {worker_id} salary {current} -> {new_salary} after deleting task {task.task_id}")
        return current - new_salary

    raise ConditionFailedError(f'Salary of worker {worker_id} kept changing, reversal skipped')


def detach_from_order(task: Task) -> None:
    """
    Remove the task id from its order's denormalized task list.

    Ids the byOrder index knows about but the list is missing are appended
    on the same write. Ids are never dropped on the index's word alone, since
    it may lag behind freshly created tasks.
    """
    task_ids = store.get_order_task_list(task.order_id)
    if task_ids is None:
        raise NotFoundError(f'Order {task.order_id} not found')

    indexed = store.list_order_task_ids(task.order_id)
    remaining = [task_id for task_id in task_ids if task_id != task.task_id]
    missing = sorted(set(indexed) - set(task_ids) - {task.task_id})
    rebuilt = remaining + missing
    if rebuilt == task_ids:
        return

    store.set_order_task_list(task.order_id, rebuilt, expected=task_ids)
    if missing:
        logger.info(f"Order {task.order_id} task list was missing {missing}, restored")
    logger.info(f"Task {task.task_id} removed from order {task.order_id}")


def delete_task(task_id: int) -> DeletionResult:
    """
    Permanently remove a task, reversing its financial effects first.

    Raises:
        NotFoundError: the task does not exist
        StoreError: the final delete failed
    """
    task = load_task(task_id)
    result = DeletionResult(task_id=task_id, deleted=False)

    # 1. Worker salary and completed-task list
    if (task.status == TaskStatus.COMPLETED and task.responsible_user_id
            and task.salary is not None and task.salary > 0):
        try:
            result.salary_reversed = reverse_worker_salary(task)
        except WorkflowError as e:
            logger.warning(f"Salary reversal for task {task_id} failed: {e.detail}")
            result.warnings.append(f'Worker salary was not reversed: {e.detail}')

    # 2. Order task list
    if task.order_id is not None:
        try:
            detach_from_order(task)
        except WorkflowError as e:
            logger.warning(f"Could not detach task {task_id} from order {task.order_id}: {e.detail}")
            result.warnings.append(f'Order task list was not updated: {e.detail}')

    # 3. The task row and its review history
    store.delete_task(task_id)
    result.deleted = True
    logger.info(f"Task {task_id} deleted ({len(result.warnings)} warnings)")
    return result
