"""Group lookup and membership checks shared by the settlements services."""

from uuid import UUID

from apps.accounts.models import User
from apps.groups.models import Group

from .exceptions import GroupNotFoundError, NotGroupMemberError


def get_member_group(*, group_id: UUID, user: User, lock: bool = False) -> Group:
    """
    Fetch a group the user belongs to.

    Args:
        group_id: UUID of the group
        user: User who must be a member
        lock: Take SELECT ... FOR UPDATE on the group row. Ledger writes
            lock the group first, the same row the settlement engine locks.

    Raises:
        GroupNotFoundError: If group doesn't exist
        NotGroupMemberError: If user is not a member
    """
    queryset = Group.objects.all()
    if lock:
        queryset = queryset.select_for_update()

    try:
        group = queryset.get(id=group_id)
    except Group.DoesNotExist:
        raise GroupNotFoundError(f"Group with ID {group_id} not found")

    if not group.has_member(user):
        raise NotGroupMemberError(f"You are not a member of {group.name}")

    return group
