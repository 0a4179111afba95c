"""
Authorization policy for products and tasks.

Pure predicates over (actor, record). Services call the ensure_* variants
before any mutation; they raise PermissionDenied instead of returning False.

An actor is anything with `id` (database id) and `role`; records carry
`user_id` (owner) and `status`.
"""

from ..errors import PermissionDenied
from ..models import PRODUCT_UNAPPROVED, ROLE_ADMIN, TASK_COMPLETED

TASK_FIELDS = frozenset({"title", "site", "description", "notes", "status", "timeSlots", "images"})
# Owners never set status; completion is an admin decision
OWNER_TASK_FIELDS = frozenset({"title", "site", "description", "notes", "timeSlots", "images"})
# Still editable by the owner once a task is completed
POST_COMPLETION_TASK_FIELDS = frozenset({"notes", "timeSlots"})


def is_admin(actor) -> bool:
    return getattr(actor, "role", None) == ROLE_ADMIN


def is_owner(actor, record) -> bool:
    return actor is not None and record.user_id == actor.id


def _slot_approved(slot) -> bool:
    if isinstance(slot, dict):
        return bool(slot.get("approved"))
    return bool(getattr(slot, "approved", False))


def has_approved_slots(task) -> bool:
    return any(_slot_approved(slot) for slot in task.time_slots or [])


def can_edit_product(actor, product) -> bool:
    return is_admin(actor) or (is_owner(actor, product) and product.status == PRODUCT_UNAPPROVED)


def can_delete_product(actor, product) -> bool:
    return can_edit_product(actor, product)


def can_edit_task(actor, task) -> bool:
    return is_admin(actor) or (is_owner(actor, task) and task.status != TASK_COMPLETED)


def can_delete_task(actor, task) -> bool:
    return is_admin(actor) or (is_owner(actor, task) and not has_approved_slots(task))


def can_set_approval(actor) -> bool:
    return is_admin(actor)


def editable_task_fields(actor, task) -> frozenset:
    """Fields of `task` the actor may change."""
    if is_admin(actor):
        return TASK_FIELDS
    if not is_owner(actor, task):
        return frozenset()
    if task.status == TASK_COMPLETED:
        return POST_COMPLETION_TASK_FIELDS
    return OWNER_TASK_FIELDS


# Raising variants used by the services


def ensure_can_edit_product(actor, product) -> None:
    if can_edit_product(actor, product):
        return
    if is_owner(actor, product):
        raise PermissionDenied("You cannot edit an approved product")
    raise PermissionDenied("You can only modify your own products")


def ensure_can_delete_product(actor, product) -> None:
    if can_delete_product(actor, product):
        return
    if is_owner(actor, product):
        raise PermissionDenied("You cannot delete an approved product")
    raise PermissionDenied("You can only delete your own products")


def ensure_can_edit_task_fields(actor, task, fields) -> None:
    """Reject the update if any of `fields` is outside what the actor may edit."""
    allowed = editable_task_fields(actor, task)
    if not allowed:
        raise PermissionDenied("You can only modify your own tasks")
    blocked = set(fields) - allowed
    if not blocked:
        return
    if "status" in blocked:
        raise PermissionDenied("Only admins can change the task status")
    raise PermissionDenied("Completed tasks cannot be modified")


def ensure_can_delete_task(actor, task) -> None:
    if can_delete_task(actor, task):
        return
    if is_owner(actor, task):
        raise PermissionDenied("Cannot delete task with approved time slots")
    raise PermissionDenied("You can only delete your own tasks")


def ensure_can_set_approval(actor) -> None:
    if not can_set_approval(actor):
        raise PermissionDenied("Only admins can change approval status")
