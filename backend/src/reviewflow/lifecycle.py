"""
Lifecycle controller for the task review workflow.

    pending/in_progress --submit--> under_review
    under_review --approve--> completed (terminal)
    under_review --return(comment)--> in_progress

Money moves only on approval. Every status change is a conditional write
on the current status, so two reviewers acting on the same task cannot
both win, and the reward flag doubles as the at-most-once guard for the
dispatcher credit.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from boto3.dynamodb.conditions import Attr

from . import store
from .compensation import calculate_compensation
from .conditions import all_of, has_size, not_equals, unset, unset_or_equals
from .errors import (
    AlreadySettledError,
    ConditionFailedError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    PartiallyAppliedError,
    ValidationError,
    WorkflowError,
)
from .logging import logger
from .models import ReviewAction, Task, TaskStatus, next_status
from .review_returns import append_return, next_return, normalize_comment
from .utils import parse_timestamp, to_iso, utc_now

_NOT_SETTLED = unset_or_equals('dispatcherRewardApplied', False)


@dataclass
class ApprovalResult:
    """Outcome of an approval, returned to the dispatcher."""
    task_id: int
    status: str
    settled: bool
    dispatcher_reward: Optional[Decimal] = None
    worker_payment: Optional[Decimal] = None
    is_overdue: bool = False
    worker_credited: bool = False
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'taskId': self.task_id,
            'status': self.status,
            'settled': self.settled,
            'dispatcherReward': self.dispatcher_reward,
            'workerPayment': self.worker_payment,
            'isOverdue': self.is_overdue,
            'workerCredited': self.worker_credited,
            'warnings': self.warnings,
        }


def load_task(task_id: int) -> Task:
    item = store.get_task(task_id)
    if not item:
        raise NotFoundError(f'Task {task_id} not found')
    return Task.from_item(item)


def _require_transition(task: Task, action: str) -> str:
    target = next_status(task.status, action)
    if target is None:
        raise InvalidTransitionError(f"Cannot {action} task {task.task_id} in status '{task.status}'")
    return target


def _ensure_reviewer(task: Task, reviewer_id: Optional[str]):
    """A dispatcher may only act on tasks assigned to them. None skips the check."""
    if reviewer_id is not None and task.dispatcher_id and task.dispatcher_id != reviewer_id:
        raise ForbiddenError(f'Task {task.task_id} is assigned to another dispatcher')


def _raise_conflict(task_id: int, action: str):
    """Explain why a conditional write on a task lost."""
    current = load_task(task_id)
    if action == ReviewAction.APPROVE and current.dispatcher_reward_applied:
        raise AlreadySettledError(f'Reward for task {task_id} has already been applied')
    if next_status(current.status, action) is None:
        raise InvalidTransitionError(f"Cannot {action} task {task_id} in status '{current.status}'")
    raise ConditionFailedError(f'Task {task_id} changed concurrently, reload and retry')


# =============================================================================
# SUBMIT FOR REVIEW
# =============================================================================

def resolve_default_dispatcher(order_id: int) -> Optional[Dict[str, Any]]:
    """
    Default dispatcher for an order's current stage.

    Any failure leaves the task unassigned; it is logged, not raised.
    """
    try:
        stage = store.get_order_stage(order_id)
        if stage is None:
            logger.warning(f"Order {order_id} not found, task left without dispatcher")
            return None
        setting = store.get_automation_setting(stage)
    except WorkflowError as e:
        logger.warning(f"Dispatcher lookup for order {order_id} failed: {e.detail}")
        return None

    if not setting:
        logger.warning(f"No automation setting for stage {stage} of order {order_id}")
    return setting


def submit_for_review(task_id: int) -> Task:
    """
    Worker hands a task in: lock it and queue it for the dispatcher.

    The first submission snapshots ``due_date`` into ``original_deadline``;
    later submissions keep the snapshot. Attributes that are filled in here
    are only written while still unset (missing or NULL) in the row.
    """
    task = load_task(task_id)
    _require_transition(task, ReviewAction.SUBMIT)

    fields = {'status': TaskStatus.UNDER_REVIEW, 'isLocked': True}
    guards = [Attr('status').is_in(list(TaskStatus.ACTIVE))]

    if task.original_deadline is None and task.due_date is not None:
        fields['originalDeadline'] = to_iso(task.due_date)
        guards.append(unset('originalDeadline'))

    assigned = None
    if not task.dispatcher_id and task.order_id is not None:
        setting = resolve_default_dispatcher(task.order_id)
        if setting:
            assigned = setting['dispatcher_id']
            fields['dispatcherId'] = assigned
            guards.append(unset('dispatcherId'))
            if task.dispatcher_percentage is None and setting.get('dispatcher_percentage') is not None:
                fields['dispatcherPercentage'] = setting['dispatcher_percentage']
                guards.append(unset('dispatcherPercentage'))

    try:
        attrs = store.update_task(task_id, fields=fields, condition=all_of(*guards))
    except ConditionFailedError:
        _raise_conflict(task_id, ReviewAction.SUBMIT)

    if assigned:
        logger.info(f"Task {task_id} assigned to dispatcher {assigned}")
    logger.info(f"Task {task_id} submitted for review")
    return Task.from_item(attrs)


# =============================================================================
# APPROVE
# =============================================================================

def _completion_fields(task: Task, now: datetime) -> Dict[str, Any]:
    fields = {'status': TaskStatus.COMPLETED, 'completedAt': to_iso(now)}
    if task.created_at is not None:
        fields['executionTimeSeconds'] = max(0, int((now - task.created_at).total_seconds()))
    return fields


def _claim_completion(task_id: int, fields: Dict[str, Any]) -> None:
    try:
        store.update_task(
            task_id,
            fields=fields,
            condition=Attr('status').eq(TaskStatus.UNDER_REVIEW) & _NOT_SETTLED
        )
    except ConditionFailedError:
        _raise_conflict(task_id, ReviewAction.APPROVE)


def _release_completion(task_id: int) -> None:
    """Undo a completion claim whose dispatcher credit did not land."""
    store.update_task(
        task_id,
        fields={'status': TaskStatus.UNDER_REVIEW, 'dispatcherRewardApplied': False},
        remove=['completedAt', 'executionTimeSeconds', 'dispatcherRewardAmount', 'dispatcherRewardAppliedAt'],
        condition=Attr('dispatcherRewardApplied').eq(True)
    )


def approve_task(task_id: int, reviewer_id: Optional[str] = None, now: Optional[datetime] = None) -> ApprovalResult:
    """
    Dispatcher accepts the work: complete the task and settle compensation.

    Steps:
    1. Read the dispatcher (missing dispatcher aborts before any write)
    2. Complete the task and set the reward flag in one conditional write
    3. Credit the dispatcher; on failure step 2 is undone
    4. Credit the worker; failure is reported as a warning only

    Raises:
        AlreadySettledError: the reward was applied by an earlier approval
        InvalidTransitionError: the task is not under review
        NotFoundError: task or dispatcher missing
        PartiallyAppliedError: dispatcher credit failed and the task could not be reopened
    """
    task = load_task(task_id)
    _ensure_reviewer(task, reviewer_id)

    if task.dispatcher_reward_applied:
        logger.info(f"Task {task_id} already settled, approval ignored")
        raise AlreadySettledError(f'Reward for task {task_id} has already been applied')

    _require_transition(task, ReviewAction.APPROVE)
    now = now or utc_now()
    fields = _completion_fields(task, now)

    if not task.has_compensation_terms:
        _claim_completion(task_id, fields)
        logger.warning(f"Task {task_id} completed without compensation terms")
        return ApprovalResult(
            task_id=task_id,
            status=TaskStatus.COMPLETED,
            settled=False,
            warnings=['Task has no dispatcher, percentage or salary; no compensation was applied']
        )

    compensation = calculate_compensation(task, now)
    reward = compensation.dispatcher_reward

    # 1. Dispatcher must exist before anything is written
    if store.get_user(task.dispatcher_id) is None:
        raise NotFoundError(f'Dispatcher {task.dispatcher_id} not found')

    # 2. Complete + flag
    fields.update({
        'dispatcherRewardAmount': reward,
        'dispatcherRewardApplied': True,
        'dispatcherRewardAppliedAt': to_iso(now),
    })
    _claim_completion(task_id, fields)

    # 3. Dispatcher reward
    try:
        new_salary = store.add_to_user_salary(task.dispatcher_id, reward)
    except WorkflowError as e:
        logger.error(f"Dispatcher credit failed for task {task_id}: {e.detail}")
        try:
            _release_completion(task_id)
        except WorkflowError as release_error:
            raise PartiallyAppliedError(
                f'Task {task_id} marked completed but dispatcher was not credited: {release_error.detail}',
                applied_steps=['task_completed']
            ) from e
        raise
    logger.info(f"Dispatcher {task.dispatcher_id} credited {reward} for task {task_id}, salary now {new_salary}")

    result = ApprovalResult(
        task_id=task_id,
        status=TaskStatus.COMPLETED,
        settled=True,
        dispatcher_reward=reward,
        worker_payment=compensation.worker_payment,
        is_overdue=compensation.is_overdue,
    )

    # 4. Worker payment (non-fatal)
    if task.responsible_user_id:
        try:
            result.worker_credited = store.credit_worker_for_task(
                task.responsible_user_id,
                task_id,
                compensation.worker_payment,
                compensation.is_overdue
            )
            if not result.worker_credited:
                result.warnings.append('Worker was already paid for this task; no second payment was made')
        except WorkflowError as e:
            logger.warning(f"Task {task_id} approved but worker {task.responsible_user_id} not credited: {e.detail}")
            result.warnings.append(f'Task approved, but the worker payment was not credited: {e.detail}')
    else:
        result.warnings.append('Task has no responsible worker; no worker payment was made')

    logger.info(f"Task {task_id} approved (reward={reward}, payment={compensation.worker_payment}, "
                f"overdue={compensation.is_overdue})")
    return result


# =============================================================================
# RETURN FOR REWORK
# =============================================================================

def return_for_rework(
    task_id: int,
    comment: str,
    reviewer_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> Task:
    """
    Dispatcher sends a task back with a comment.

    The ledger write is conditional on the number of returns read, so the
    new entry is always numbered N+1 even under concurrent returns.
    """
    comment = normalize_comment(comment)
    task = load_task(task_id)
    _ensure_reviewer(task, reviewer_id)
    _require_transition(task, ReviewAction.RETURN)

    entry = next_return(task.review_returns, comment, now)
    ledger = append_return(task.review_returns, entry)

    try:
        attrs = store.update_task(
            task_id,
            fields={
                'status': TaskStatus.IN_PROGRESS,
                'isLocked': False,
                'reviewReturns': [r.to_item() for r in ledger],
            },
            condition=all_of(
                Attr('status').eq(TaskStatus.UNDER_REVIEW),
                has_size('reviewReturns', task.returns_count),
            )
        )
    except ConditionFailedError:
        current = load_task(task_id)
        if current.status != TaskStatus.UNDER_REVIEW:
            raise InvalidTransitionError(f"Cannot return task {task_id} in status '{current.status}'")
        raise ConditionFailedError(f'Review history of task {task_id} changed, reload and retry')

    logger.info(f"Task {task_id} returned for rework (#{entry.return_number})")
    return Task.from_item(attrs)


# =============================================================================
# RESCHEDULE
# =============================================================================

def reschedule_task(task_id: int, due_date: Any, reviewer_id: Optional[str] = None) -> Task:
    """
    Move a task's due date. ``original_deadline`` is never touched, so
    overdue discounts keep using the first-submission deadline.
    """
    parsed = parse_timestamp(due_date)
    if parsed is None:
        raise ValidationError(f'Invalid due date: {due_date!r}')

    task = load_task(task_id)
    _ensure_reviewer(task, reviewer_id)
    if task.status == TaskStatus.COMPLETED:
        raise InvalidTransitionError(f'Task {task_id} is completed and cannot be rescheduled')

    try:
        attrs = store.update_task(
            task_id,
            fields={'dueDate': to_iso(parsed)},
            condition=not_equals('status', TaskStatus.COMPLETED)
        )
    except ConditionFailedError:
        raise InvalidTransitionError(f'Task {task_id} is completed and cannot be rescheduled')

    logger.info(f"Task {task_id} rescheduled to {to_iso(parsed)}")
    return Task.from_item(attrs)
