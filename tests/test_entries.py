import datetime as dt
import uuid
from decimal import Decimal

import pytest
from pydantic import ValidationError as PydanticValidationError

from errors import GuardViolation, NotFoundError
from schemas import CategoryIn, EntryIn, EntryPatch, ItemIn


def test_create_entry(services, make_group, make_entry) -> None:
    group = make_group()

    entry = make_entry(group, description="Groceries")

    assert entry.category_id is None
    assert services.entries.count() == 1
    assert services.entries.count_for_group(group.id) == 1
    assert services.entries.get(entry.id).description == "Groceries"


def test_create_entry_requires_group(services) -> None:
    with pytest.raises(NotFoundError):
        services.entries.create(
            EntryIn(date=dt.date(2025, 1, 1), group_id=uuid.uuid4())
        )


def test_category_must_belong_to_entry_group(services, make_group, make_entry) -> None:
    home = make_group("Family")
    away = make_group("Trips")
    category = services.categories.create(CategoryIn(name="Food", group_id=away.id))

    with pytest.raises(GuardViolation):
        make_entry(home, category)

    entry = make_entry(home)
    with pytest.raises(GuardViolation):
        services.entries.update(entry.id, EntryPatch(category_id=category.id))
    assert services.entries.count() == 1


def test_entries_newest_first(services, make_group, make_entry) -> None:
    group = make_group()
    make_entry(group, day=dt.date(2025, 1, 1), description="old")
    make_entry(group, day=dt.date(2025, 3, 1), description="new")

    assert [e.description for e in services.entries.list_all()] == ["new", "old"]
    assert [e.description for e in services.entries.for_group(group.id)] == [
        "new",
        "old",
    ]


def test_between_is_inclusive(services, make_group, make_entry) -> None:
    group = make_group()
    make_entry(group, day=dt.date(2025, 1, 1), description="jan")
    make_entry(group, day=dt.date(2025, 2, 1), description="feb")
    make_entry(group, day=dt.date(2025, 3, 1), description="mar")

    found = services.entries.between(dt.date(2025, 1, 1), dt.date(2025, 2, 1))

    assert [e.description for e in found] == ["feb", "jan"]


def test_between_sees_new_entries(services, make_group, make_entry) -> None:
    group = make_group()
    start, end = dt.date(2025, 1, 1), dt.date(2025, 1, 31)
    assert services.entries.between(start, end) == []

    make_entry(group, day=dt.date(2025, 1, 15))

    assert len(services.entries.between(start, end)) == 1


def test_patch_clears_category(services, make_group, make_entry) -> None:
    group = make_group()
    category = services.categories.create(CategoryIn(name="Food", group_id=group.id))
    entry = make_entry(group, category, description="Lunch")
    assert len(services.entries.for_category(category.id)) == 1

    updated = services.entries.update(entry.id, EntryPatch(category_id=None))

    assert updated.category_id is None
    assert updated.description == "Lunch"
    assert services.entries.for_category(category.id) == []


def test_patch_without_fields_changes_nothing(services, make_group, make_entry) -> None:
    group = make_group()
    category = services.categories.create(CategoryIn(name="Food", group_id=group.id))
    entry = make_entry(group, category, description="Lunch")

    updated = services.entries.update(entry.id, EntryPatch())

    assert updated.category_id == category.id
    assert updated.description == "Lunch"
    assert updated.date == dt.date(2025, 1, 1)


def test_patch_cannot_clear_date() -> None:
    with pytest.raises(PydanticValidationError):
        EntryPatch(date=None)


def test_delete_entry_removes_items(services, make_group, make_entry) -> None:
    group = make_group()
    entry = make_entry(group)
    item = services.items.create(ItemIn(amount=Decimal("4.00"), entry_id=entry.id))
    assert services.items.total_for_entry(entry.id) == Decimal("4.00")
    assert services.items.total_for_group(group.id) == Decimal("4.00")
    assert services.items.count() == 1

    services.entries.delete(entry.id)

    assert services.entries.get(entry.id) is None
    assert services.items.get(item.id) is None
    assert services.items.count() == 0
    assert services.items.for_entry(entry.id) == []
    assert services.items.total_for_group(group.id) == Decimal("0")
    assert services.entries.count_for_group(group.id) == 0
