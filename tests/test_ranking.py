from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from taskhub.auth import Identity
from taskhub.ranking import (
    filter_tasks,
    listing_owner,
    priority_weight,
    rank_tasks,
    ranked_view,
)

BASE = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def mk(title, priority='Medium', completed=False, minutes=0, category='Task', owner_id=1):
    return SimpleNamespace(
        title=title,
        priority=priority,
        completed=completed,
        category=category,
        owner_id=owner_id,
        created_at=BASE + timedelta(minutes=minutes),
    )


def titles(tasks):
    return [t.title for t in tasks]


def test_priority_weights_and_unknown_default():
    assert priority_weight('High') == 3
    assert priority_weight('Medium') == 2
    assert priority_weight('Low') == 1
    # unknown or missing values rank like Medium
    assert priority_weight('Urgent') == 2
    assert priority_weight(None) == 2


def test_incomplete_before_completed_regardless_of_priority():
    tasks = [mk('done-high', 'High', completed=True), mk('open-low', 'Low')]
    assert titles(rank_tasks(tasks)) == ['open-low', 'done-high']


def test_buy_milk_ranks_above_older_low_task():
    existing_low = mk('Old low', 'Low', minutes=0)
    done = mk('Finished', 'High', completed=True, minutes=5)
    milk = mk('Buy milk', 'High', minutes=10)
    assert titles(rank_tasks([existing_low, done, milk])) == ['Buy milk', 'Old low', 'Finished']


def test_newest_first_within_same_priority():
    tasks = [mk('a', minutes=1), mk('b', minutes=3), mk('c', minutes=2)]
    assert titles(rank_tasks(tasks)) == ['b', 'c', 'a']


def test_unknown_priority_sorts_with_medium_by_date():
    tasks = [mk('medium-old', 'Medium', minutes=0), mk('weird-new', 'Someday', minutes=5), mk('low', 'Low', minutes=9)]
    assert titles(rank_tasks(tasks)) == ['weird-new', 'medium-old', 'low']


def test_missing_created_at_sorts_last_in_group():
    undated = mk('undated')
    undated.created_at = None
    naive = mk('naive', minutes=1)
    naive.created_at = naive.created_at.replace(tzinfo=None)
    assert titles(rank_tasks([undated, naive, mk('aware')])) == ['naive', 'aware', 'undated']


def test_rank_is_stable_and_does_not_mutate_input():
    tasks = [mk('x', minutes=1), mk('y', minutes=1)]
    original = list(tasks)
    assert titles(rank_tasks(tasks)) == ['x', 'y']
    assert tasks == original


def test_filter_by_category_and_owner():
    tasks = [mk('t1', category='Work', owner_id=1), mk('t2', category='Car', owner_id=1), mk('t3', category='Work', owner_id=2)]
    assert titles(filter_tasks(tasks, category='Work')) == ['t1', 't3']
    assert titles(filter_tasks(tasks, owner_id=2)) == ['t3']
    assert titles(filter_tasks(tasks, category='Work', owner_id=1)) == ['t1']
    assert len(filter_tasks(tasks)) == 3


def test_ranked_view_filters_then_orders():
    tasks = [mk('w-low', 'Low', category='Work'), mk('car', 'High', category='Car'), mk('w-high', 'High', category='Work')]
    assert titles(ranked_view(tasks, category='Work')) == ['w-high', 'w-low']


def test_listing_owner_for_regular_user_ignores_requested_owner():
    me = Identity(user_id=7, role='user', display_name='Me')
    assert listing_owner(me) == 7
    assert listing_owner(me, 99) == 7


def test_listing_owner_for_admin():
    admin = Identity(user_id=1, role='admin', display_name='Boss')
    assert listing_owner(admin) is None
    assert listing_owner(admin, 42) == 42


def test_empty_input():
    assert rank_tasks([]) == []
    assert ranked_view([], category='Work') == []
