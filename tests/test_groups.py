import uuid

import pytest
from pydantic import ValidationError as PydanticValidationError

from errors import GuardViolation, NotFoundError
from schemas import CategoryIn, GroupPatch, UserGroupIn, UserIn
from services import CacheKeys


def test_create_group_uppercases_currency(services, make_group) -> None:
    group = make_group("Trips", "eur")

    assert group.currency == "EUR"
    assert services.groups.get(group.id).name == "Trips"
    assert services.groups.count() == 1


def test_exists_ignores_case(services, make_group) -> None:
    group = make_group("Trips")

    assert services.groups.exists("trips") is True
    assert services.groups.exists("TRIPS ") is True
    assert services.groups.exists("trips", excluding_id=group.id) is False
    assert services.groups.exists("Holidays") is False


def test_cached_negative_exists_is_dropped_on_create(services, make_group) -> None:
    assert services.groups.exists("trips") is False

    make_group("Trips")

    assert services.groups.exists("trips") is True


def test_list_survives_severed_store(services, make_group, sever) -> None:
    make_group("Family")
    make_group("Trips")
    loaded = services.groups.list_all()

    sever()

    assert [g.name for g in services.groups.list_all()] == ["Family", "Trips"]
    assert [g.id for g in loaded] == [g.id for g in services.groups.list_all()]


def test_update_group(services, make_group) -> None:
    group = make_group("Family")
    services.groups.list_all()
    services.groups.exists("family")

    services.groups.update(group.id, GroupPatch(name="Household", currency="gbp"))

    listed = services.groups.list_all()
    assert [g.name for g in listed] == ["Household"]
    assert listed[0].currency == "GBP"
    assert services.groups.exists("family") is False
    assert services.groups.exists("household") is True


def test_patch_cannot_clear_name() -> None:
    with pytest.raises(PydanticValidationError):
        GroupPatch(name=None)


def test_delete_empty_group(services, make_group) -> None:
    group = make_group()
    assert services.groups.count() == 1

    services.groups.delete(group.id)

    assert services.groups.get(group.id) is None
    assert services.groups.count() == 0
    assert services.groups.list_all() == []


def test_delete_missing_group(services) -> None:
    with pytest.raises(NotFoundError):
        services.groups.delete(uuid.uuid4())


def test_delete_group_with_entries_is_blocked(services, make_group, make_entry) -> None:
    group = make_group()
    entry = make_entry(group)

    with pytest.raises(GuardViolation):
        services.groups.delete(group.id)

    assert services.groups.get(group.id) is not None
    assert services.entries.get(entry.id) is not None


def test_delete_group_with_categories_is_blocked(services, make_group) -> None:
    group = make_group()
    category = services.categories.create(CategoryIn(name="Food", group_id=group.id))

    with pytest.raises(GuardViolation):
        services.groups.delete(group.id)

    assert services.groups.get(group.id) is not None
    assert services.categories.get(category.id) is not None
    assert services.categories.count_for_group(group.id) == 1


def test_delete_group_drops_memberships(services, cache, make_group) -> None:
    user = services.users.create(UserIn(name="Bob", email="bob@example.com"))
    group = make_group()
    services.memberships.create(UserGroupIn(user_id=user.id, group_id=group.id))
    assert services.memberships.is_member(user.id, group.id) is True
    users = services.users.list_all()
    assert len(services.memberships.groups_for_user(user.id)) == 1

    services.groups.delete(group.id)

    assert services.memberships.is_member(user.id, group.id) is False
    assert services.memberships.groups_for_user(user.id) == []
    assert services.memberships.count() == 0
    assert cache.get_cached_data(CacheKeys.Users.all_users.key()) == users
    assert services.users.get(user.id) is not None


def test_exists_folds_accented_names(services, make_group) -> None:
    group = make_group("Ñandú")

    assert services.groups.exists("ñandú") is True
    assert services.groups.exists("ÑANDÚ") is True
    assert services.groups.exists("ñandú", excluding_id=group.id) is False
    assert services.groups.exists("nandu") is False
