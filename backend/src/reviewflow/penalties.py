"""
Admin penalty workflow.

After a task is completed an admin can fine the dispatcher who approved
it: twice the reward they were paid, at most once per task. The salary
may go negative.
"""
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from boto3.dynamodb.conditions import Attr

from . import store
from .compensation import calculate_penalty
from .conditions import all_of, is_number, unset_or_equals
from .config import config
from .errors import (
    AlreadySettledError,
    ConditionFailedError,
    NotEligibleError,
    PartiallyAppliedError,
    WorkflowError,
)
from .lifecycle import load_task
from .logging import logger
from .models import PenaltyLogEntry, Task
from .utils import utc_now


@dataclass
class PenaltyResult:
    task_id: int
    dispatcher_id: str
    penalty_amount: Decimal
    dispatcher_salary: Decimal
    penalty_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'taskId': self.task_id,
            'dispatcherId': self.dispatcher_id,
            'penaltyAmount': self.penalty_amount,
            'dispatcherSalary': self.dispatcher_salary,
            'penaltyId': self.penalty_id,
        }


def check_eligibility(task: Task) -> Decimal:
    """
    Validate that ``task`` can be penalized and return the penalty amount.

    Raises:
        NotEligibleError: no dispatcher reward was applied
        AlreadySettledError: a penalty was already applied
    """
    if not task.dispatcher_reward_applied or task.dispatcher_reward_amount is None or not task.dispatcher_id:
        raise NotEligibleError(f'Task {task.task_id} has no dispatcher reward to penalize against')
    if task.penalty_applied:
        raise AlreadySettledError(f'Dispatcher was already penalized for task {task.task_id}')
    return calculate_penalty(task.dispatcher_reward_amount)


def penalty_preview(task_id: int) -> Dict[str, Any]:
    """Amount a penalty would cost the dispatcher, without writing anything."""
    task = load_task(task_id)
    amount = check_eligibility(task)
    return {
        'taskId': task_id,
        'dispatcherId': task.dispatcher_id,
        'rewardAmount': task.dispatcher_reward_amount,
        'penaltyAmount': amount,
    }


def _claim_penalty(task_id: int) -> None:
    try:
        store.update_task(
            task_id,
            fields={'penaltyApplied': True},
            condition=all_of(
                Attr('dispatcherRewardApplied').eq(True),
                is_number('dispatcherRewardAmount'),
                unset_or_equals('penaltyApplied', False),
            )
        )
    except ConditionFailedError:
        check_eligibility(load_task(task_id))
        raise


def _release_penalty(task_id: int) -> None:
    store.update_task(
        task_id,
        fields={'penaltyApplied': False},
        condition=Attr('penaltyApplied').eq(True)
    )


def penalize_dispatcher(
    task_id: int,
    admin_id: str,
    reason: Optional[str] = None,
    now: Optional[datetime] = None
) -> PenaltyResult:
    """
    Fine the dispatcher of a completed task.

    Steps:
    1. Set ``penalty_applied`` with a conditional write (the at-most-once guard)
    2. Debit the dispatcher's salary; on failure step 1 is undone
    3. Append the audit log entry

    Raises:
        NotEligibleError, AlreadySettledError: guard violations, nothing written
        PartiallyAppliedError: salary debited but the log entry (or the undo) failed
    """
    task = load_task(task_id)
    amount = check_eligibility(task)
    reason = (reason or '').strip() or config.DEFAULT_PENALTY_REASON
    now = now or utc_now()

    # 1. Guard
    _claim_penalty(task_id)

    # 2. Salary
    try:
        new_salary = store.add_to_user_salary(task.dispatcher_id, -amount)
    except WorkflowError as e:
        logger.error(f"Penalty debit for task {task_id} failed: {e.detail}")
        try:
            _release_penalty(task_id)
        except WorkflowError as release_error:
            raise PartiallyAppliedError(
                f'Penalty flag set on task {task_id} but dispatcher was not debited: {release_error.detail}',
                applied_steps=['penalty_flag']
            ) from e
        raise
    logger.info(f"Dispatcher {task.dispatcher_id} penalized {amount} for task {task_id}, salary now {new_salary}")

    # 3. Audit log
    entry = PenaltyLogEntry(
        penalty_id=str(uuid.uuid4()),
        task_id=task_id,
        admin_id=admin_id,
        dispatcher_id=task.dispatcher_id,
        penalty_amount=amount,
        reason=reason,
        created_at=now,
    )
    try:
        store.append_penalty_log(entry)
    except WorkflowError as e:
        logger.error(f"Penalty for task {task_id} applied but not logged: {e.detail}")
        raise PartiallyAppliedError(
            f'Penalty applied to task {task_id} but the audit log entry was not written: {e.detail}',
            applied_steps=['penalty_flag', 'dispatcher_salary']
        ) from e

    return PenaltyResult(
        task_id=task_id,
        dispatcher_id=task.dispatcher_id,
        penalty_amount=amount,
        dispatcher_salary=new_salary,
        penalty_id=entry.penalty_id,
    )
