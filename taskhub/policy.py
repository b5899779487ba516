from .errors import Forbidden, NotFound


def can_mutate(identity, task) -> bool:
    """Owners and admins may change or delete a task; nobody else."""
    if identity is None or task is None:
        return False
    return identity.is_admin or identity.user_id == task.owner_id


def ensure_can_mutate(identity, task):
    """Check order is fixed: a missing task is NotFound before any 403."""
    if task is None:
        raise NotFound('task not found')
    if not can_mutate(identity, task):
        raise Forbidden()
    return task
