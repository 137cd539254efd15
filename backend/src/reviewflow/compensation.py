"""
Compensation calculator.

Pure functions over task fields at approval time. Callers perform the
writes. The dispatcher reward is taken from the base salary, not from the
overdue-discounted worker payment, and the admin penalty is a multiple of
the reward actually applied.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from .config import config
from .models import Task
from .utils import utc_now

CENT = Decimal('0.01')
WHOLE = Decimal('1')

OVERDUE_PAYMENT_FACTOR = Decimal(config.OVERDUE_PAYMENT_FACTOR)
PENALTY_MULTIPLIER = Decimal(config.PENALTY_MULTIPLIER)


@dataclass(frozen=True)
class Compensation:
    """Amounts owed for one approval."""
    worker_payment: Decimal
    dispatcher_reward: Decimal
    is_overdue: bool


def is_overdue(original_deadline: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """A task is overdue only against its first-submission deadline."""
    if original_deadline is None:
        return False
    return original_deadline < (now or utc_now())


def calculate_worker_payment(salary: Decimal, overdue: bool) -> Decimal:
    """
    Worker payment for a task.

    Overdue work is paid at OVERDUE_PAYMENT_FACTOR of the salary, rounded
    half-up to a whole currency unit (1000 -> 900, 555 -> 500).
    """
    if not overdue:
        return salary
    return (salary * OVERDUE_PAYMENT_FACTOR).quantize(WHOLE, rounding=ROUND_HALF_UP)


def calculate_dispatcher_reward(salary: Decimal, percentage: Decimal) -> Decimal:
    """Dispatcher's cut, ``salary * percentage / 100`` rounded to cents."""
    return (salary * percentage / Decimal('100')).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_penalty(reward_amount: Decimal) -> Decimal:
    return (reward_amount * PENALTY_MULTIPLIER).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_compensation(task: Task, now: Optional[datetime] = None) -> Compensation:
    """
    Compute worker payment and dispatcher reward for ``task``.

    Raises:
        ValueError: salary or dispatcher percentage is missing
    """
    if task.salary is None or task.dispatcher_percentage is None:
        raise ValueError(f'Task {task.task_id} has no salary or dispatcher percentage')

    overdue = is_overdue(task.original_deadline, now)
    return Compensation(
        worker_payment=calculate_worker_payment(task.salary, overdue),
        dispatcher_reward=calculate_dispatcher_reward(task.salary, task.dispatcher_percentage),
        is_overdue=overdue,
    )
