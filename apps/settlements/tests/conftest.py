import uuid

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User
from apps.groups.models import Group, GroupMembership, GroupRole

from .fakes import InMemorySettlementRepository


def authenticate(user):
    """Return an API client carrying a JWT for ``user``."""
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


# =============================================================================
# Engine fixtures (no database)
# =============================================================================

@pytest.fixture
def repository():
    """Empty in-memory repository."""
    return InMemorySettlementRepository()


@pytest.fixture
def group_id(repository):
    """A group registered in the in-memory repository."""
    return repository.add_group(uuid.uuid4())


@pytest.fixture
def members():
    """Member ids A, B, C, D sorted by their string form."""
    return sorted((uuid.uuid4() for _ in range(4)), key=str)


# =============================================================================
# Database fixtures
# =============================================================================

@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


@pytest.fixture
def alice(db):
    """Create and return the group owner."""
    return User.objects.create_user(
        email='alice@example.com',
        password='TestPass123!',
        display_name='Alice',
    )


@pytest.fixture
def bob(db):
    """Create and return a group member."""
    return User.objects.create_user(
        email='bob@example.com',
        password='TestPass123!',
        display_name='Bob',
    )


@pytest.fixture
def carol(db):
    """Create and return a group admin."""
    return User.objects.create_user(
        email='carol@example.com',
        password='TestPass123!',
        display_name='Carol',
    )


@pytest.fixture
def outsider(db):
    """Create and return a user not in the group."""
    return User.objects.create_user(
        email='outsider@example.com',
        password='TestPass123!',
        display_name='Outsider',
    )


@pytest.fixture
def group(db, alice, bob, carol):
    """Group owned by Alice with Bob as member and Carol as admin."""
    group = Group.objects.create(
        name='Flat 4B',
        description='Shared household costs',
        owner=alice,
    )
    GroupMembership.objects.create(user=alice, group=group, role=GroupRole.OWNER)
    GroupMembership.objects.create(user=bob, group=group, role=GroupRole.MEMBER)
    GroupMembership.objects.create(user=carol, group=group, role=GroupRole.ADMIN)
    return group


@pytest.fixture
def other_group(db, outsider):
    """A second group the main members do not belong to."""
    group = Group.objects.create(name='Other Flat', owner=outsider)
    GroupMembership.objects.create(user=outsider, group=group, role=GroupRole.OWNER)
    return group


@pytest.fixture
def alice_client(alice):
    """Return API client authenticated as Alice (owner)."""
    return authenticate(alice)


@pytest.fixture
def bob_client(bob):
    """Return API client authenticated as Bob (member)."""
    return authenticate(bob)


@pytest.fixture
def carol_client(carol):
    """Return API client authenticated as Carol (admin)."""
    return authenticate(carol)


@pytest.fixture
def outsider_client(outsider):
    """Return API client authenticated as a non-member."""
    return authenticate(outsider)
