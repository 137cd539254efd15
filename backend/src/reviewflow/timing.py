"""
Deadline and execution-time summaries for task listings.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from .models import Task, TaskStatus
from .utils import utc_now


def timing_summary(task: Task, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Completed tasks report how long they took; open tasks report the time
    left until ``due_date`` or how far past it they are.
    """
    if task.status == TaskStatus.COMPLETED and task.execution_time_seconds is not None:
        seconds = task.execution_time_seconds
        return {'executionTimeSeconds': seconds, 'timeLabel': f'completed in {format_duration(seconds)}'}

    if task.due_date is None:
        return {}

    remaining = int((task.due_date - (now or utc_now())).total_seconds())
    if remaining <= 0:
        return {'overdueSeconds': -remaining, 'timeLabel': f'overdue by {format_duration(-remaining)}'}
    return {'remainingSeconds': remaining, 'timeLabel': format_duration(remaining)}


def format_duration(seconds: int) -> str:
    """``3h 25m`` / ``25m``"""
    hours, rest = divmod(max(0, int(seconds)), 3600)
    minutes = rest // 60
    if hours:
        return f'{hours}h {minutes}m'
    return f'{minutes}m'
