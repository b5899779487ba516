"""Task store: validated CRUD and counting over the ``task`` table.

Ordering of listings is not done here; see ``ranking``. The ``*_as``
helpers combine the store with the authorization policy for callers that
hold an Identity.
"""
from typing import Optional
import logging

from sqlmodel import select
from sqlalchemy import func

from . import config
from .db import store_session
from .errors import NotFound, ValidationError
from .models import CATEGORY_MAX, DESCRIPTION_MAX, TITLE_MAX, Priority, Task
from .policy import ensure_can_mutate
from .ranking import listing_owner, ranked_view
from .utils import clean_text, format_dt, now_utc

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('title', 'description', 'completed', 'priority', 'category')
GROUPABLE_FIELDS = ('priority', 'category', 'completed')
PRIORITIES = [p.value for p in Priority]


def validate_task_fields(fields: dict) -> dict:
    """Return cleaned task fields or raise ValidationError with per-field messages."""
    errors: dict[str, str] = {}
    out: dict = {}

    title = clean_text(fields.get('title'))
    if not title:
        errors['title'] = 'title is required'
    elif len(title) > TITLE_MAX:
        errors['title'] = f'title cannot be longer than {TITLE_MAX} characters'
    out['title'] = title

    description = clean_text(fields.get('description'))
    if description and len(description) > DESCRIPTION_MAX:
        errors['description'] = f'description cannot be longer than {DESCRIPTION_MAX} characters'
    out['description'] = description or None

    completed = fields.get('completed', False)
    if completed is None:
        completed = False
    if not isinstance(completed, bool):
        errors['completed'] = 'completed must be true or false'
    out['completed'] = completed

    priority = fields.get('priority')
    if priority is None or priority == '':
        priority = Priority.medium.value
    if priority not in PRIORITIES:
        errors['priority'] = 'priority must be one of ' + ', '.join(PRIORITIES)
    out['priority'] = priority

    category = clean_text(fields.get('category')) or config.DEFAULT_CATEGORY
    if len(category) > CATEGORY_MAX:
        errors['category'] = f'category cannot be longer than {CATEGORY_MAX} characters'
    out['category'] = category

    if errors:
        raise ValidationError(errors)
    return out


def serialize_task(task: Task) -> dict:
    return {
        'id': task.id,
        'title': task.title,
        'description': task.description,
        'completed': bool(task.completed),
        'priority': task.priority,
        'category': task.category,
        'owner_id': task.owner_id,
        'created_at': format_dt(task.created_at),
        'updated_at': format_dt(task.updated_at),
    }


async def create_task(owner_id: int, fields: dict) -> Task:
    """Create a task owned by ``owner_id``.

    Any owner supplied inside ``fields`` is ignored; the owner is always the
    caller's resolved identity.
    """
    clean = validate_task_fields({k: fields.get(k) for k in EDITABLE_FIELDS if k in fields})
    task = Task(owner_id=owner_id, **clean)
    async with store_session() as sess:
        sess.add(task)
        await sess.commit()
        await sess.refresh(task)
    logger.info('created task id=%s owner=%s', task.id, owner_id)
    return task


async def find_task(task_id: int) -> Optional[Task]:
    async with store_session() as sess:
        return await sess.get(Task, task_id)


async def get_task(task_id: int) -> Task:
    task = await find_task(task_id)
    if task is None:
        raise NotFound('task not found')
    return task


async def list_by_category(category: Optional[str] = None, owner_id: Optional[int] = None) -> list[Task]:
    """Unordered fetch; pass the result through ranking before showing it."""
    q = select(Task)
    if category:
        q = q.where(Task.category == category)
    if owner_id is not None:
        q = q.where(Task.owner_id == owner_id)
    async with store_session() as sess:
        res = await sess.exec(q)
        return list(res.all())


async def update_task(task_id: int, partial: dict) -> Task:
    """Merge ``partial`` over the stored task and re-validate the result.

    Only editable fields are taken from ``partial``; owner_id, id and
    created_at never change here.
    """
    async with store_session() as sess:
        task = await sess.get(Task, task_id)
        if task is None:
            raise NotFound('task not found')
        merged = {k: getattr(task, k) for k in EDITABLE_FIELDS}
        for k in EDITABLE_FIELDS:
            if k in partial:
                merged[k] = partial[k]
        clean = validate_task_fields(merged)
        for k, v in clean.items():
            setattr(task, k, v)
        task.updated_at = now_utc()
        sess.add(task)
        await sess.commit()
        await sess.refresh(task)
    logger.info('updated task id=%s', task_id)
    return task


async def delete_task(task_id: int) -> None:
    async with store_session() as sess:
        task = await sess.get(Task, task_id)
        if task is None:
            raise NotFound('task not found')
        await sess.delete(task)
        await sess.commit()
    logger.info('deleted task id=%s', task_id)


async def count_by(owner_id: Optional[int] = None, completed: Optional[bool] = None, category: Optional[str] = None) -> int:
    q = select(func.count(Task.id))
    if owner_id is not None:
        q = q.where(Task.owner_id == owner_id)
    if completed is not None:
        q = q.where(Task.completed == completed)
    if category:
        q = q.where(Task.category == category)
    async with store_session() as sess:
        res = await sess.exec(q)
        return int(res.one() or 0)


async def group_by(field: str, owner_id: Optional[int] = None, category: Optional[str] = None) -> dict:
    if field not in GROUPABLE_FIELDS:
        raise ValueError(f'cannot group tasks by {field!r}')
    col = getattr(Task, field)
    q = select(col, func.count(Task.id)).group_by(col)
    if owner_id is not None:
        q = q.where(Task.owner_id == owner_id)
    if category:
        q = q.where(Task.category == category)
    async with store_session() as sess:
        res = await sess.exec(q)
        return {value: int(n) for value, n in res.all()}


async def summary(owner_id: Optional[int] = None, category: Optional[str] = None) -> dict:
    """Counts for the dashboard and /tasks/report."""
    total = await count_by(owner_id=owner_id, category=category)
    completed = await count_by(owner_id=owner_id, completed=True, category=category)
    by_priority = {p: 0 for p in PRIORITIES}
    by_priority.update(await group_by('priority', owner_id=owner_id, category=category))
    by_category = await group_by('category', owner_id=owner_id, category=category)
    q = select(Task).order_by(Task.created_at.desc()).limit(5)
    if owner_id is not None:
        q = q.where(Task.owner_id == owner_id)
    if category:
        q = q.where(Task.category == category)
    async with store_session() as sess:
        res = await sess.exec(q)
        latest = list(res.all())
    return {
        'total': total,
        'completed': completed,
        'pending': total - completed,
        'percentage': round(completed * 100 / total) if total else 0,
        'by_priority': by_priority,
        'by_category': by_category,
        'latest': latest,
    }


# ---------------- identity-aware operations -----------------

async def list_tasks_for(identity, category: Optional[str] = None, owner: Optional[int] = None) -> list[Task]:
    owner_id = listing_owner(identity, owner)
    tasks = await list_by_category(category=category, owner_id=owner_id)
    return ranked_view(tasks, category=category, owner_id=owner_id)


async def get_task_as(identity, task_id: int) -> Task:
    return ensure_can_mutate(identity, await find_task(task_id))


async def update_task_as(identity, task_id: int, partial: dict) -> Task:
    ensure_can_mutate(identity, await find_task(task_id))
    return await update_task(task_id, partial)


async def delete_task_as(identity, task_id: int) -> None:
    ensure_can_mutate(identity, await find_task(task_id))
    await delete_task(task_id)
