import uuid

import pytest
from pydantic import ValidationError as PydanticValidationError

from errors import GuardViolation, NotFoundError
from schemas import UserGroupIn, UserIn, UserPatch
from services import CacheKeys


def test_create_and_list_users(services) -> None:
    assert services.users.list_all() == []

    bob = services.users.create(UserIn(name="Bob", email="bob@example.com"))
    alice = services.users.create(UserIn(name="  Alice ", email="alice@example.com"))

    users = services.users.list_all()
    assert [u.name for u in users] == ["Alice", "Bob"]
    assert services.users.get(bob.id).email == "bob@example.com"
    assert alice.created_at is not None
    assert alice.last_modified_at is None
    assert services.users.count() == 2


def test_list_is_served_from_cache_once_loaded(services, sever) -> None:
    services.users.create(UserIn(name="Bob", email="bob@example.com"))
    first = services.users.list_all()

    sever()

    second = services.users.list_all()
    assert [u.id for u in second] == [u.id for u in first]


def test_returned_lists_are_copies(services) -> None:
    services.users.create(UserIn(name="Bob", email="bob@example.com"))
    users = services.users.list_all()
    users.clear()

    assert len(services.users.list_all()) == 1


def test_create_invalidates_list_and_count(services) -> None:
    assert services.users.count() == 0
    assert services.users.list_all() == []

    services.users.create(UserIn(name="Bob", email="bob@example.com"))

    assert services.users.count() == 1
    assert len(services.users.list_all()) == 1


def test_update_applies_only_set_fields(services) -> None:
    user = services.users.create(UserIn(name="Bob", email="bob@example.com"))
    services.users.list_all()

    updated = services.users.update(user.id, UserPatch(name="Robert"))

    assert updated.name == "Robert"
    assert updated.email == "bob@example.com"
    assert updated.last_modified_at is not None
    assert services.users.list_all()[0].name == "Robert"


def test_update_can_clear_name(services) -> None:
    user = services.users.create(UserIn(name="Bob", email="bob@example.com"))

    updated = services.users.update(user.id, UserPatch(name=None))

    assert updated.name is None


def test_patch_cannot_clear_email() -> None:
    with pytest.raises(PydanticValidationError):
        UserPatch(email=None)


def test_update_missing_user(services) -> None:
    with pytest.raises(NotFoundError):
        services.users.update(uuid.uuid4(), UserPatch(name="Ghost"))


def test_exists_is_case_insensitive(services) -> None:
    assert services.users.exists("bob@example.com") is False

    user = services.users.create(UserIn(name="Bob", email="Bob@Example.com"))

    assert services.users.exists("bob@example.com") is True
    assert services.users.exists(" BOB@EXAMPLE.COM ") is True
    assert services.users.exists("bob@example.com", excluding_id=user.id) is False


def test_delete_user(services) -> None:
    user = services.users.create(UserIn(name="Bob", email="bob@example.com"))
    assert services.users.exists("bob@example.com") is True

    services.users.delete(user.id)

    assert services.users.get(user.id) is None
    assert services.users.list_all() == []
    assert services.users.count() == 0
    assert services.users.exists("bob@example.com") is False


def test_delete_user_with_memberships_is_blocked(services, make_group) -> None:
    user = services.users.create(UserIn(name="Bob", email="bob@example.com"))
    group = make_group()
    services.memberships.create(UserGroupIn(user_id=user.id, group_id=group.id))

    with pytest.raises(GuardViolation):
        services.users.delete(user.id)

    assert services.users.get(user.id) is not None
    assert services.memberships.is_member(user.id, group.id) is True


def test_user_writes_leave_other_families_alone(services, cache, make_group) -> None:
    make_group()
    groups = services.groups.list_all()

    services.users.create(UserIn(name="Bob", email="bob@example.com"))

    assert cache.get_cached_data(CacheKeys.Groups.all_groups.key()) == groups


def test_exists_folds_accented_emails(services) -> None:
    services.users.create(UserIn(name="José", email="José@Example.com"))

    assert services.users.exists("josé@example.com") is True
    assert services.users.exists("JOSÉ@EXAMPLE.COM") is True
