"""
Review return ledger: the append-only history of rework cycles on a task.
"""
from datetime import datetime
from typing import List, Optional, Sequence

from .compensation import is_overdue
from .errors import ValidationError
from .models import ReviewReturn, Task
from .utils import utc_now


def normalize_comment(comment: Optional[str]) -> str:
    """
    Trim a rework comment.

    Raises:
        ValidationError: comment is missing or blank
    """
    if not isinstance(comment, str) or not comment.strip():
        raise ValidationError('A comment is required when returning a task for rework')
    return comment.strip()


def next_return(existing: Sequence[ReviewReturn], comment: str, now: Optional[datetime] = None) -> ReviewReturn:
    """Build the entry that follows ``existing``; numbering is ``len(existing) + 1``."""
    return ReviewReturn(
        return_number=len(existing) + 1,
        comment=normalize_comment(comment),
        returned_at=now or utc_now(),
    )


def append_return(existing: Sequence[ReviewReturn], entry: ReviewReturn) -> List[ReviewReturn]:
    """New ledger with ``entry`` appended. Entries are never edited or renumbered."""
    expected = len(existing) + 1
    if entry.return_number != expected:
        raise ValueError(f'Return number {entry.return_number} does not follow {len(existing)} entries')
    return [*existing, entry]


def is_overdue_with_returns(task: Task, now: Optional[datetime] = None) -> bool:
    """Overdue task that has already been sent back at least once."""
    return task.returns_count > 0 and is_overdue(task.original_deadline, now)
