from types import SimpleNamespace

import pytest

from taskhub.auth import Identity
from taskhub.errors import Forbidden, NotFound
from taskhub.policy import can_mutate, ensure_can_mutate

OWNER = Identity(user_id=1, role='user', display_name='Owner')
OTHER = Identity(user_id=2, role='user', display_name='Other')
ADMIN = Identity(user_id=3, role='admin', display_name='Admin')
TASK = SimpleNamespace(id=10, owner_id=1)


def test_owner_and_admin_can_mutate():
    assert can_mutate(OWNER, TASK)
    assert can_mutate(ADMIN, TASK)


def test_other_user_cannot_mutate():
    assert not can_mutate(OTHER, TASK)


def test_anonymous_cannot_mutate():
    assert not can_mutate(None, TASK)


def test_ensure_returns_task_when_allowed():
    assert ensure_can_mutate(OWNER, TASK) is TASK


def test_ensure_raises_forbidden_for_other_user():
    with pytest.raises(Forbidden) as exc:
        ensure_can_mutate(OTHER, TASK)
    assert exc.value.status_code == 403


def test_missing_task_is_not_found_even_for_strangers():
    # not-found is checked first so a stranger never sees 403 for a missing id
    with pytest.raises(NotFound):
        ensure_can_mutate(OTHER, None)
    with pytest.raises(NotFound):
        ensure_can_mutate(ADMIN, None)
