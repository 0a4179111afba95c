"""Tests for product and task authorization rules."""

from types import SimpleNamespace

import pytest

from fieldtrack.domain import policy
from fieldtrack.errors import PermissionDenied
from fieldtrack.models import (
    PRODUCT_APPROVED,
    PRODUCT_UNAPPROVED,
    ROLE_ADMIN,
    ROLE_USER,
    TASK_COMPLETED,
    TASK_IN_PROGRESS,
)

ADMIN = SimpleNamespace(id=1, role=ROLE_ADMIN)
OWNER = SimpleNamespace(id=2, role=ROLE_USER)
STRANGER = SimpleNamespace(id=3, role=ROLE_USER)


def product(status=PRODUCT_UNAPPROVED, user_id=2):
    return SimpleNamespace(user_id=user_id, status=status)


def task(status=TASK_IN_PROGRESS, approved=False, user_id=2):
    slots = [{"date": "2025-01-06", "startTime": "09:00", "endTime": "", "approved": approved}]
    return SimpleNamespace(user_id=user_id, status=status, time_slots=slots)


class TestProducts:
    def test_owner_edits_unapproved(self):
        assert policy.can_edit_product(OWNER, product())
        assert policy.can_delete_product(OWNER, product())

    def test_owner_blocked_once_approved(self):
        approved = product(PRODUCT_APPROVED)
        assert not policy.can_edit_product(OWNER, approved)
        with pytest.raises(PermissionDenied, match="approved product"):
            policy.ensure_can_edit_product(OWNER, approved)
        with pytest.raises(PermissionDenied, match="approved product"):
            policy.ensure_can_delete_product(OWNER, approved)

    def test_admin_always(self):
        assert policy.can_edit_product(ADMIN, product(PRODUCT_APPROVED))
        assert policy.can_delete_product(ADMIN, product(PRODUCT_APPROVED, user_id=9))

    def test_stranger(self):
        assert not policy.can_edit_product(STRANGER, product())
        with pytest.raises(PermissionDenied, match="your own products"):
            policy.ensure_can_edit_product(STRANGER, product())


class TestTasks:
    def test_owner_edits_in_progress(self):
        assert policy.can_edit_task(OWNER, task())
        assert policy.editable_task_fields(OWNER, task()) == policy.OWNER_TASK_FIELDS

    def test_completed_task_limits_owner(self):
        done = task(TASK_COMPLETED)
        assert not policy.can_edit_task(OWNER, done)
        assert policy.editable_task_fields(OWNER, done) == {"notes", "timeSlots"}
        policy.ensure_can_edit_task_fields(OWNER, done, ["notes"])
        with pytest.raises(PermissionDenied, match="Completed tasks"):
            policy.ensure_can_edit_task_fields(OWNER, done, ["notes", "title"])

    def test_owner_never_sets_status(self):
        with pytest.raises(PermissionDenied, match="task status"):
            policy.ensure_can_edit_task_fields(OWNER, task(), ["status"])

    def test_stranger_edits_nothing(self):
        assert policy.editable_task_fields(STRANGER, task()) == frozenset()
        with pytest.raises(PermissionDenied, match="your own tasks"):
            policy.ensure_can_edit_task_fields(STRANGER, task(), ["notes"])

    def test_delete_blocked_by_approved_slot(self):
        locked = task(approved=True)
        assert policy.has_approved_slots(locked)
        assert not policy.can_delete_task(OWNER, locked)
        with pytest.raises(PermissionDenied, match="approved time slots"):
            policy.ensure_can_delete_task(OWNER, locked)
        assert policy.can_delete_task(ADMIN, locked)

    def test_completed_without_approval_is_deletable(self):
        assert policy.can_delete_task(OWNER, task(TASK_COMPLETED))

    def test_approval_is_admin_only(self):
        assert policy.can_set_approval(ADMIN)
        with pytest.raises(PermissionDenied):
            policy.ensure_can_set_approval(OWNER)
