"""
Data models and status constants for the review workflow.
Based on the task lifecycle: Pending/InProgress → UnderReview → Completed (or back to InProgress)
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from .utils import parse_timestamp, to_decimal, to_iso


class TaskStatus:
    """Task lifecycle statuses."""
    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    UNDER_REVIEW = 'under_review'
    COMPLETED = 'completed'

    ACTIVE = (PENDING, IN_PROGRESS)
    ALL = (PENDING, IN_PROGRESS, UNDER_REVIEW, COMPLETED)


class ReviewAction:
    """Actions accepted by the lifecycle controller."""
    SUBMIT = 'submit'
    APPROVE = 'approve'
    RETURN = 'return'


# status -> {action: next status}
TRANSITIONS = {
    TaskStatus.PENDING: {ReviewAction.SUBMIT: TaskStatus.UNDER_REVIEW},
    TaskStatus.IN_PROGRESS: {ReviewAction.SUBMIT: TaskStatus.UNDER_REVIEW},
    TaskStatus.UNDER_REVIEW: {
        ReviewAction.APPROVE: TaskStatus.COMPLETED,
        ReviewAction.RETURN: TaskStatus.IN_PROGRESS,
    },
    TaskStatus.COMPLETED: {},
}


def next_status(status: str, action: str) -> Optional[str]:
    """Target status for ``action`` from ``status``, None when not allowed."""
    return TRANSITIONS.get(status, {}).get(action)


class UserRole:
    """Cognito groups that gate the workflow actions."""
    WORKER = 'worker'
    DISPATCHER = 'dispatcher'
    ADMIN = 'admin'


@dataclass(frozen=True)
class ReviewReturn:
    """One rework cycle: the dispatcher's comment and when it was sent back."""
    return_number: int
    comment: str
    returned_at: datetime

    def __post_init__(self):
        if not isinstance(self.return_number, int) or self.return_number < 1:
            raise ValueError(f"return_number must be a positive integer, got {self.return_number!r}")
        if not self.comment or not self.comment.strip():
            raise ValueError('comment must not be empty')

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'ReviewReturn':
        returned_at = parse_timestamp(item.get('returnedAt', item.get('returned_at')))
        if returned_at is None:
            raise ValueError(f"review return without a timestamp: {item!r}")
        return cls(
            return_number=int(item.get('returnNumber', item.get('return_number', 0))),
            comment=str(item.get('comment', '')),
            returned_at=returned_at,
        )

    def to_item(self) -> Dict[str, Any]:
        return {
            'returnNumber': self.return_number,
            'comment': self.comment,
            'returnedAt': to_iso(self.returned_at),
        }


@dataclass
class Task:
    """A task row as the workflow sees it."""
    task_id: int
    status: str
    task_uuid: Optional[str] = None
    title: Optional[str] = None
    due_date: Optional[datetime] = None
    original_deadline: Optional[datetime] = None
    created_at: Optional[datetime] = None
    is_locked: bool = False
    salary: Optional[Decimal] = None
    responsible_user_id: Optional[str] = None
    order_id: Optional[int] = None
    dispatcher_id: Optional[str] = None
    dispatcher_percentage: Optional[Decimal] = None
    dispatcher_reward_amount: Optional[Decimal] = None
    dispatcher_reward_applied: bool = False
    dispatcher_reward_applied_at: Optional[datetime] = None
    penalty_applied: bool = False
    completed_at: Optional[datetime] = None
    execution_time_seconds: Optional[int] = None
    review_returns: List[ReviewReturn] = field(default_factory=list)

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> 'Task':
        """Build a Task from a DynamoDB item (camelCase attributes)."""
        order_id = item.get('orderId')
        execution_time = item.get('executionTimeSeconds')
        returns = sorted(
            (ReviewReturn.from_item(r) for r in item.get('reviewReturns') or []),
            key=lambda r: r.return_number
        )
        return cls(
            task_id=int(item['taskId']),
            status=item.get('status', TaskStatus.PENDING),
            task_uuid=item.get('taskUuid'),
            title=item.get('title'),
            due_date=parse_timestamp(item.get('dueDate')),
            original_deadline=parse_timestamp(item.get('originalDeadline')),
            created_at=parse_timestamp(item.get('createdAt')),
            is_locked=bool(item.get('isLocked', False)),
            salary=to_decimal(item.get('salary')),
            responsible_user_id=item.get('responsibleUserId'),
            order_id=int(order_id) if order_id is not None else None,
            dispatcher_id=item.get('dispatcherId'),
            dispatcher_percentage=to_decimal(item.get('dispatcherPercentage')),
            dispatcher_reward_amount=to_decimal(item.get('dispatcherRewardAmount')),
            dispatcher_reward_applied=bool(item.get('dispatcherRewardApplied', False)),
            dispatcher_reward_applied_at=parse_timestamp(item.get('dispatcherRewardAppliedAt')),
            penalty_applied=bool(item.get('penaltyApplied', False)),
            completed_at=parse_timestamp(item.get('completedAt')),
            execution_time_seconds=int(execution_time) if execution_time is not None else None,
            review_returns=returns,
        )

    @property
    def returns_count(self) -> int:
        return len(self.review_returns)

    @property
    def has_compensation_terms(self) -> bool:
        """Dispatcher, percentage and salary are all present and non-zero."""
        return bool(self.dispatcher_id and self.dispatcher_percentage and self.salary)


@dataclass(frozen=True)
class PenaltyLogEntry:
    """Immutable audit record of an admin penalty against a dispatcher."""
    penalty_id: str
    task_id: int
    admin_id: str
    dispatcher_id: str
    penalty_amount: Decimal
    reason: str
    created_at: datetime

    def to_item(self) -> Dict[str, Any]:
        return {
            'penaltyId': self.penalty_id,
            'taskId': self.task_id,
            'adminId': self.admin_id,
            'dispatcherId': self.dispatcher_id,
            'penaltyAmount': self.penalty_amount,
            'reason': self.reason,
            'createdAt': to_iso(self.created_at),
        }
