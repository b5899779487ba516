"""Ordering and filtering of task listings.

Every listing shown to a user goes through ``ranked_view``:

1. incomplete tasks before completed ones
2. priority descending (High=3, Medium=2, Low=1; anything else counts as 2)
3. created_at descending, newest first

The functions here are pure: they only look at ``completed``, ``priority``,
``category``, ``owner_id`` and ``created_at`` attributes, so they work on
Task rows as well as on any lookalike object.
"""
from datetime import datetime, timezone
from typing import Iterable, Optional

from .utils import as_utc

PRIORITY_WEIGHTS = {'High': 3, 'Medium': 2, 'Low': 1}
DEFAULT_PRIORITY_WEIGHT = 2

# stand-in for a missing created_at; ranks after every real timestamp
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def priority_weight(priority) -> int:
    return PRIORITY_WEIGHTS.get(priority, DEFAULT_PRIORITY_WEIGHT)


def _sort_key(task):
    created = as_utc(getattr(task, 'created_at', None)) or _EPOCH
    return (
        bool(getattr(task, 'completed', False)),
        -priority_weight(getattr(task, 'priority', None)),
        -created.timestamp(),
    )


def rank_tasks(tasks: Iterable) -> list:
    return sorted(tasks, key=_sort_key)


def filter_tasks(tasks: Iterable, category: Optional[str] = None, owner_id: Optional[int] = None) -> list:
    out = []
    for t in tasks:
        if category and t.category != category:
            continue
        if owner_id is not None and t.owner_id != owner_id:
            continue
        out.append(t)
    return out


def ranked_view(tasks: Iterable, category: Optional[str] = None, owner_id: Optional[int] = None) -> list:
    return rank_tasks(filter_tasks(tasks, category=category, owner_id=owner_id))


def listing_owner(identity, requested_owner: Optional[int] = None) -> Optional[int]:
    """Owner filter for a listing made by ``identity``.

    Non-admins only ever see their own tasks. Admins see everything unless
    they ask for a specific owner.
    """
    if identity.is_admin:
        return requested_owner
    return identity.user_id
