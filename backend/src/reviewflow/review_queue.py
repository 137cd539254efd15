"""
Dispatcher review queue: the tasks a dispatcher still has to check.
"""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from . import store
from .compensation import is_overdue
from .models import Task
from .review_returns import is_overdue_with_returns
from .timing import timing_summary
from .utils import to_iso, utc_now

_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)


def _cached(lookup: Callable[[Any], Optional[Dict[str, Any]]]) -> Callable[[Any], Optional[Dict[str, Any]]]:
    """One store read per id for the lifetime of a single queue build."""
    seen: Dict[Any, Optional[Dict[str, Any]]] = {}

    def get(key):
        if key is None:
            return None
        if key not in seen:
            seen[key] = lookup(key)
        return seen[key]

    return get


def _user_name(user: Optional[Dict[str, Any]]) -> Optional[str]:
    if not user:
        return None
    return user.get('fullName')


def _order_title(order: Optional[Dict[str, Any]]) -> Optional[str]:
    """``"title (client)"`` the way the dashboard labels an order."""
    if not order or not order.get('title'):
        return None
    client = order.get('clientName')
    return f"{order['title']} ({client})" if client else order['title']


def _queue_entry(task: Task, now: datetime, get_user, get_order) -> Dict[str, Any]:
    entry = {
        'taskId': task.task_id,
        'taskUuid': task.task_uuid,
        'title': task.title,
        'orderId': task.order_id,
        'orderTitle': _order_title(get_order(task.order_id)),
        'responsibleUserId': task.responsible_user_id,
        'responsibleUserName': _user_name(get_user(task.responsible_user_id)),
        'salary': task.salary,
        'dispatcherPercentage': task.dispatcher_percentage,
        'dueDate': to_iso(task.due_date) if task.due_date else None,
        'originalDeadline': to_iso(task.original_deadline) if task.original_deadline else None,
        'returnsCount': task.returns_count,
        'reviewReturns': [r.to_item() for r in task.review_returns],
        'isOverdue': is_overdue(task.original_deadline, now),
        'isOverdueWithReturns': is_overdue_with_returns(task, now),
    }
    entry.update(timing_summary(task, now))
    return entry


def build_review_queue(dispatcher_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Tasks under review for ``dispatcher_id``, earliest due date first.

    Each entry carries the worker's display name and the order's
    ``"title (client)"`` label next to the raw ids.

    Returns:
        ``{'dispatcherId', 'dispatcherName', 'tasks': [...], 'total': n, 'overdueCount': m}``
    """
    now = now or utc_now()
    tasks = [Task.from_item(item) for item in store.list_review_queue(dispatcher_id)]
    tasks.sort(key=lambda t: t.due_date or _FAR_FUTURE)

    get_user = _cached(store.get_user)
    get_order = _cached(store.get_order)
    entries = [_queue_entry(task, now, get_user, get_order) for task in tasks]
    return {
        'dispatcherId': dispatcher_id,
        'dispatcherName': _user_name(get_user(dispatcher_id)),
        'tasks': entries,
        'total': len(entries),
        'overdueCount': sum(1 for e in entries if e['isOverdue']),
    }
