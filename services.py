from __future__ import annotations

import datetime as dt
import logging
import uuid
from decimal import Decimal
from typing import Any, Callable, ClassVar, Iterable, Optional

from sqlalchemy import func, select

from cache import Cache, CacheFamily, CacheKey, CacheNamespace
from config import get_settings
from database import casefold_key
from errors import GuardViolation, NotFoundError
from models import (
    DEFAULT_CATEGORY_COLOR,
    ROLE_MEMBER,
    ROLE_OWNER,
    Category,
    Entry,
    Group,
    Item,
    User,
    UserGroup,
)
from schemas import (
    CategoryIn,
    CategoryPatch,
    EntryIn,
    EntryPatch,
    GroupIn,
    GroupPatch,
    ItemIn,
    ItemPatch,
    Patch,
    UserGroupIn,
    UserGroupPatch,
    UserIn,
    UserPatch,
)
from store import Store

logger = logging.getLogger(__name__)


def _utcnow() -> dt.datetime:
    return dt.datetime.utcnow()


def _normalize_name(value: str) -> str:
    return casefold_key(value)


class CacheKeys:
    class Users:
        all_users = CacheFamily("UserService", "all_users")
        user_count = CacheFamily("UserService", "user_count")
        user_exists = CacheFamily("UserService", "user_exists")

    class Groups:
        all_groups = CacheFamily("GroupService", "all_groups")
        group_count = CacheFamily("GroupService", "group_count")
        group_exists = CacheFamily("GroupService", "group_exists")

    class Categories:
        all_categories = CacheFamily("CategoryService", "all_categories")
        group_categories = CacheFamily("CategoryService", "group_categories")
        category_count = CacheFamily("CategoryService", "category_count")
        group_category_count = CacheFamily("CategoryService", "group_category_count")
        category_exists = CacheFamily("CategoryService", "category_exists")

    class Entries:
        all_entries = CacheFamily("EntryService", "all_entries")
        group_entries = CacheFamily("EntryService", "group_entries")
        category_entries = CacheFamily("EntryService", "category_entries")
        entries_between = CacheFamily("EntryService", "entries_between")
        entry_count = CacheFamily("EntryService", "entry_count")
        group_entry_count = CacheFamily("EntryService", "group_entry_count")

    class Items:
        all_items = CacheFamily("ItemService", "all_items")
        entry_items = CacheFamily("ItemService", "entry_items")
        group_items = CacheFamily("ItemService", "group_items")
        item_count = CacheFamily("ItemService", "item_count")
        entry_total_amount = CacheFamily("ItemService", "entry_total_amount")
        group_total_amount = CacheFamily("ItemService", "group_total_amount")

    class Memberships:
        all_user_groups = CacheFamily("UserGroupService", "all_user_groups")
        user_user_groups = CacheFamily("UserGroupService", "user_user_groups")
        group_user_groups = CacheFamily("UserGroupService", "group_user_groups")
        users_in_group = CacheFamily("UserGroupService", "users_in_group")
        groups_for_user = CacheFamily("UserGroupService", "groups_for_user")
        user_group_count = CacheFamily("UserGroupService", "user_group_count")
        is_member = CacheFamily("UserGroupService", "is_member")


class Invalidation:
    """The cache families one kind of write makes stale."""

    def __init__(
        self,
        data: Iterable[CacheFamily] = (),
        validation: Iterable[CacheFamily] = (),
        calculation: Iterable[CacheFamily] = (),
    ) -> None:
        self.data = tuple(data)
        self.validation = tuple(validation)
        self.calculation = tuple(calculation)

    def __add__(self, other: "Invalidation") -> "Invalidation":
        return Invalidation(
            self.data + other.data,
            self.validation + other.validation,
            self.calculation + other.calculation,
        )


USER_WRITES = Invalidation(
    data=(
        CacheKeys.Users.all_users,
        CacheKeys.Users.user_count,
        CacheKeys.Memberships.users_in_group,
    ),
    validation=(CacheKeys.Users.user_exists,),
)
GROUP_WRITES = Invalidation(
    data=(
        CacheKeys.Groups.all_groups,
        CacheKeys.Groups.group_count,
        CacheKeys.Memberships.groups_for_user,
    ),
    validation=(CacheKeys.Groups.group_exists,),
)
CATEGORY_WRITES = Invalidation(
    data=(
        CacheKeys.Categories.all_categories,
        CacheKeys.Categories.group_categories,
        CacheKeys.Categories.category_count,
        CacheKeys.Categories.group_category_count,
    ),
    validation=(CacheKeys.Categories.category_exists,),
)
ENTRY_WRITES = Invalidation(
    data=(
        CacheKeys.Entries.all_entries,
        CacheKeys.Entries.group_entries,
        CacheKeys.Entries.category_entries,
        CacheKeys.Entries.entries_between,
        CacheKeys.Entries.entry_count,
        CacheKeys.Entries.group_entry_count,
    ),
)
ITEM_WRITES = Invalidation(
    data=(
        CacheKeys.Items.all_items,
        CacheKeys.Items.entry_items,
        CacheKeys.Items.group_items,
        CacheKeys.Items.item_count,
    ),
    calculation=(
        CacheKeys.Items.entry_total_amount,
        CacheKeys.Items.group_total_amount,
    ),
)
USER_GROUP_WRITES = Invalidation(
    data=(
        CacheKeys.Memberships.all_user_groups,
        CacheKeys.Memberships.user_user_groups,
        CacheKeys.Memberships.group_user_groups,
        CacheKeys.Memberships.users_in_group,
        CacheKeys.Memberships.groups_for_user,
        CacheKeys.Memberships.user_group_count,
    ),
    validation=(CacheKeys.Memberships.is_member,),
)


class EntityService:
    """Read-through caching and invalidation shared by the entity services."""

    model: ClassVar[type]
    label: ClassVar[str]
    writes: ClassVar[Invalidation]

    def __init__(self, store: Store, cache: Cache) -> None:
        self.store = store
        self.cache = cache

    def _read_through(
        self, namespace: CacheNamespace, key: CacheKey, load: Callable[[], Any]
    ) -> Any:
        cached = self.cache.get(namespace, key)
        if cached is not None:
            return list(cached) if isinstance(cached, list) else cached
        generation = self.cache.generation(namespace, key.family)
        value = load()
        # A write that cleared the family while we were loading wins.
        self.cache.put(namespace, key, value, generation=generation)
        return list(value) if isinstance(value, list) else value

    def _cached_data(self, key: CacheKey, load: Callable[[], Any]) -> Any:
        return self._read_through(CacheNamespace.data, key, load)

    def _cached_validation(self, key: CacheKey, load: Callable[[], bool]) -> bool:
        return self._read_through(CacheNamespace.validation, key, load)

    def _cached_calculation(self, key: CacheKey, load: Callable[[], Any]) -> Any:
        return self._read_through(CacheNamespace.calculation, key, load)

    def _invalidate(self, invalidation: Invalidation) -> None:
        for family in invalidation.data:
            self.cache.clear_data_cache(family)
        for family in invalidation.validation:
            self.cache.clear_validation_cache(family)
        for family in invalidation.calculation:
            self.cache.clear_calculation_cache(family)

    def _require(self, model: type, ident: uuid.UUID, label: str) -> Any:
        obj = self.store.get(model, ident)
        if obj is None:
            raise NotFoundError(f"{label} not found")
        return obj

    def _apply_patch(self, obj: Any, patch: Patch) -> dict[str, Any]:
        changes = patch.changes()
        for name, value in changes.items():
            setattr(obj, name, value)
        return changes

    def _insert(self, obj: Any) -> Any:
        with self.store.perform():
            self.store.add(obj)
            self.store.save()
        self._invalidate(self.writes)
        logger.info(f"{self.label.lower()}_created: id={obj.id}")
        return obj

    def get(self, ident: uuid.UUID) -> Optional[Any]:
        return self.store.get(self.model, ident)


class UserService(EntityService):
    model = User
    label = "User"
    writes = USER_WRITES

    def list_all(self) -> list[User]:
        return self._cached_data(
            CacheKeys.Users.all_users.key(),
            lambda: self.store.fetch(User, order_by=(User.name.asc(),)),
        )

    def create(self, data: UserIn) -> User:
        user = User(
            id=uuid.uuid4(),
            name=data.name.strip() if data.name else data.name,
            email=data.email.strip(),
            created_at=_utcnow(),
        )
        return self._insert(user)

    def update(self, user_id: uuid.UUID, patch: UserPatch) -> User:
        with self.store.perform():
            user = self._require(User, user_id, "User")
            self._apply_patch(user, patch)
            user.last_modified_at = _utcnow()
            self.store.save()
        self._invalidate(self.writes)
        return user

    def delete(self, user_id: uuid.UUID) -> None:
        with self.store.perform():
            user = self._require(User, user_id, "User")
            memberships = self.store.count(UserGroup, UserGroup.user_id == user.id)
            if memberships:
                raise GuardViolation(
                    "Cannot delete a user who still belongs to groups"
                )
            self.store.delete(user)
            self.store.save()
        self._invalidate(self.writes)
        logger.info(f"user_deleted: id={user_id}")

    def exists(self, email: str, excluding_id: Optional[uuid.UUID] = None) -> bool:
        normalized = _normalize_name(email)

        def load() -> bool:
            criteria = [func.casefold_key(User.email) == normalized]
            if excluding_id is not None:
                criteria.append(User.id != excluding_id)
            return self.store.count(User, *criteria) > 0

        return self._cached_validation(
            CacheKeys.Users.user_exists.key(normalized, excluding_id), load
        )

    def count(self) -> int:
        return self._cached_data(
            CacheKeys.Users.user_count.key(), lambda: self.store.count(User)
        )


class GroupService(EntityService):
    model = Group
    label = "Group"
    writes = GROUP_WRITES

    def list_all(self) -> list[Group]:
        return self._cached_data(
            CacheKeys.Groups.all_groups.key(),
            lambda: self.store.fetch(Group, order_by=(Group.name.asc(),)),
        )

    def create(self, data: GroupIn) -> Group:
        group = Group(
            id=uuid.uuid4(),
            name=data.name.strip(),
            currency=(data.currency or get_settings().default_currency).upper(),
            created_at=_utcnow(),
        )
        return self._insert(group)

    def update(self, group_id: uuid.UUID, patch: GroupPatch) -> Group:
        with self.store.perform():
            group = self._require(Group, group_id, "Group")
            changes = self._apply_patch(group, patch)
            if "currency" in changes:
                group.currency = changes["currency"].upper()
            group.last_modified_at = _utcnow()
            self.store.save()
        self._invalidate(self.writes)
        return group

    def delete(self, group_id: uuid.UUID) -> None:
        with self.store.perform():
            group = self._require(Group, group_id, "Group")
            if self.store.count(Entry, Entry.group_id == group.id):
                raise GuardViolation("Cannot delete a group that still has entries")
            if self.store.count(Category, Category.group_id == group.id):
                raise GuardViolation(
                    "Cannot delete a group that still has categories"
                )
            self.store.delete(group)
            self.store.save()
        # Memberships go with the group.
        self._invalidate(self.writes + USER_GROUP_WRITES)
        logger.info(f"group_deleted: id={group_id}")

    def exists(self, name: str, excluding_id: Optional[uuid.UUID] = None) -> bool:
        normalized = _normalize_name(name)

        def load() -> bool:
            criteria = [func.casefold_key(Group.name) == normalized]
            if excluding_id is not None:
                criteria.append(Group.id != excluding_id)
            return self.store.count(Group, *criteria) > 0

        return self._cached_validation(
            CacheKeys.Groups.group_exists.key(normalized, excluding_id), load
        )

    def count(self) -> int:
        return self._cached_data(
            CacheKeys.Groups.group_count.key(), lambda: self.store.count(Group)
        )


class CategoryService(EntityService):
    model = Category
    label = "Category"
    writes = CATEGORY_WRITES

    def list_all(self) -> list[Category]:
        return self._cached_data(
            CacheKeys.Categories.all_categories.key(),
            lambda: self.store.fetch(Category, order_by=(Category.name.asc(),)),
        )

    def create(self, data: CategoryIn) -> Category:
        self._require(Group, data.group_id, "Group")
        category = Category(
            id=uuid.uuid4(),
            name=data.name.strip(),
            color=data.color or DEFAULT_CATEGORY_COLOR,
            group_id=data.group_id,
            created_at=_utcnow(),
        )
        return self._insert(category)

    def update(self, category_id: uuid.UUID, patch: CategoryPatch) -> Category:
        with self.store.perform():
            category = self._require(Category, category_id, "Category")
            self._apply_patch(category, patch)
            category.last_modified_at = _utcnow()
            self.store.save()
        self._invalidate(self.writes)
        return category

    def delete(self, category_id: uuid.UUID) -> None:
        with self.store.perform():
            category = self._require(Category, category_id, "Category")
            self.store.delete(category)
            self.store.save()
        # Entries of the category survive with their category cleared.
        self._invalidate(self.writes + ENTRY_WRITES)
        logger.info(f"category_deleted: id={category_id}")

    def for_group(self, group_id: uuid.UUID) -> list[Category]:
        return self._cached_data(
            CacheKeys.Categories.group_categories.key(group_id),
            lambda: self.store.fetch(
                Category,
                Category.group_id == group_id,
                order_by=(Category.name.asc(),),
            ),
        )

    def exists(
        self,
        name: str,
        group_id: Optional[uuid.UUID] = None,
        excluding_id: Optional[uuid.UUID] = None,
    ) -> bool:
        normalized = _normalize_name(name)

        def load() -> bool:
            criteria = [func.casefold_key(Category.name) == normalized]
            if group_id is not None:
                criteria.append(Category.group_id == group_id)
            if excluding_id is not None:
                criteria.append(Category.id != excluding_id)
            return self.store.count(Category, *criteria) > 0

        return self._cached_validation(
            CacheKeys.Categories.category_exists.key(
                normalized, group_id, excluding_id
            ),
            load,
        )

    def count(self) -> int:
        return self._cached_data(
            CacheKeys.Categories.category_count.key(),
            lambda: self.store.count(Category),
        )

    def count_for_group(self, group_id: uuid.UUID) -> int:
        return self._cached_data(
            CacheKeys.Categories.group_category_count.key(group_id),
            lambda: self.store.count(Category, Category.group_id == group_id),
        )


ENTRY_ORDER = (Entry.date.desc(), Entry.created_at.desc())


class EntryService(EntityService):
    model = Entry
    label = "Entry"
    writes = ENTRY_WRITES

    def _check_category(
        self, category_id: Optional[uuid.UUID], group_id: uuid.UUID
    ) -> None:
        if category_id is None:
            return
        category = self._require(Category, category_id, "Category")
        if category.group_id != group_id:
            raise GuardViolation("Category belongs to a different group")

    def list_all(self) -> list[Entry]:
        return self._cached_data(
            CacheKeys.Entries.all_entries.key(),
            lambda: self.store.fetch(Entry, order_by=ENTRY_ORDER),
        )

    def create(self, data: EntryIn) -> Entry:
        self._require(Group, data.group_id, "Group")
        self._check_category(data.category_id, data.group_id)
        entry = Entry(
            id=uuid.uuid4(),
            description=data.description,
            date=data.date,
            group_id=data.group_id,
            category_id=data.category_id,
            created_at=_utcnow(),
        )
        return self._insert(entry)

    def update(self, entry_id: uuid.UUID, patch: EntryPatch) -> Entry:
        with self.store.perform():
            entry = self._require(Entry, entry_id, "Entry")
            if "category_id" in patch.model_fields_set:
                self._check_category(patch.category_id, entry.group_id)
            self._apply_patch(entry, patch)
            entry.last_modified_at = _utcnow()
            self.store.save()
        self._invalidate(self.writes)
        return entry

    def delete(self, entry_id: uuid.UUID) -> None:
        with self.store.perform():
            entry = self._require(Entry, entry_id, "Entry")
            self.store.delete(entry)
            self.store.save()
        # Items cascade with the entry, so their lists and totals go too.
        self._invalidate(self.writes + ITEM_WRITES)
        logger.info(f"entry_deleted: id={entry_id}")

    def for_group(self, group_id: uuid.UUID) -> list[Entry]:
        return self._cached_data(
            CacheKeys.Entries.group_entries.key(group_id),
            lambda: self.store.fetch(
                Entry, Entry.group_id == group_id, order_by=ENTRY_ORDER
            ),
        )

    def for_category(self, category_id: uuid.UUID) -> list[Entry]:
        return self._cached_data(
            CacheKeys.Entries.category_entries.key(category_id),
            lambda: self.store.fetch(
                Entry, Entry.category_id == category_id, order_by=ENTRY_ORDER
            ),
        )

    def between(self, start: dt.date, end: dt.date) -> list[Entry]:
        return self._cached_data(
            CacheKeys.Entries.entries_between.key(start, end),
            lambda: self.store.fetch(
                Entry, Entry.date.between(start, end), order_by=ENTRY_ORDER
            ),
        )

    def count(self) -> int:
        return self._cached_data(
            CacheKeys.Entries.entry_count.key(), lambda: self.store.count(Entry)
        )

    def count_for_group(self, group_id: uuid.UUID) -> int:
        return self._cached_data(
            CacheKeys.Entries.group_entry_count.key(group_id),
            lambda: self.store.count(Entry, Entry.group_id == group_id),
        )


ITEM_ORDER = (Item.created_at.asc(),)


class ItemService(EntityService):
    model = Item
    label = "Item"
    writes = ITEM_WRITES

    def list_all(self) -> list[Item]:
        return self._cached_data(
            CacheKeys.Items.all_items.key(),
            lambda: self.store.fetch(Item, order_by=ITEM_ORDER),
        )

    def create(self, data: ItemIn) -> Item:
        self._require(Entry, data.entry_id, "Entry")
        item = Item(
            id=uuid.uuid4(),
            description=data.description,
            amount=data.amount,
            quantity=data.quantity,
            entry_id=data.entry_id,
            created_at=_utcnow(),
        )
        return self._insert(item)

    def update(self, item_id: uuid.UUID, patch: ItemPatch) -> Item:
        with self.store.perform():
            item = self._require(Item, item_id, "Item")
            self._apply_patch(item, patch)
            item.last_modified_at = _utcnow()
            self.store.save()
        self._invalidate(self.writes)
        return item

    def delete(self, item_id: uuid.UUID) -> None:
        with self.store.perform():
            item = self._require(Item, item_id, "Item")
            self.store.delete(item)
            self.store.save()
        self._invalidate(self.writes)
        logger.info(f"item_deleted: id={item_id}")

    def for_entry(self, entry_id: uuid.UUID) -> list[Item]:
        return self._cached_data(
            CacheKeys.Items.entry_items.key(entry_id),
            lambda: self.store.fetch(
                Item, Item.entry_id == entry_id, order_by=ITEM_ORDER
            ),
        )

    def for_group(self, group_id: uuid.UUID) -> list[Item]:
        stmt = (
            select(Item)
            .join(Entry, Item.entry_id == Entry.id)
            .where(Entry.group_id == group_id)
            .order_by(*ITEM_ORDER)
        )
        return self._cached_data(
            CacheKeys.Items.group_items.key(group_id),
            lambda: self.store.fetch_statement(stmt),
        )

    def count(self) -> int:
        return self._cached_data(
            CacheKeys.Items.item_count.key(), lambda: self.store.count(Item)
        )

    def total_for_entry(self, entry_id: uuid.UUID) -> Decimal:
        """Sum of amount x quantity over the entry's items."""
        return self._cached_calculation(
            CacheKeys.Items.entry_total_amount.key(entry_id),
            lambda: sum_line_totals(self.for_entry(entry_id)),
        )

    def total_for_group(self, group_id: uuid.UUID) -> Decimal:
        return self._cached_calculation(
            CacheKeys.Items.group_total_amount.key(group_id),
            lambda: sum_line_totals(self.for_group(group_id)),
        )


def sum_line_totals(items: Iterable[Item]) -> Decimal:
    return sum((item.line_total for item in items), Decimal("0"))


USER_GROUP_ORDER = (UserGroup.joined_at.asc(),)


class UserGroupService(EntityService):
    model = UserGroup
    label = "UserGroup"
    writes = USER_GROUP_WRITES

    def list_all(self) -> list[UserGroup]:
        return self._cached_data(
            CacheKeys.Memberships.all_user_groups.key(),
            lambda: self.store.fetch(UserGroup, order_by=USER_GROUP_ORDER),
        )

    def create(self, data: UserGroupIn) -> UserGroup:
        self._require(User, data.user_id, "User")
        self._require(Group, data.group_id, "Group")
        membership = UserGroup(
            id=uuid.uuid4(),
            user_id=data.user_id,
            group_id=data.group_id,
            role=data.role.strip() or ROLE_MEMBER,
            joined_at=_utcnow(),
        )
        return self._insert(membership)

    def _is_last_owner(self, membership: UserGroup) -> bool:
        if not membership.is_owner:
            return False
        others = (
            UserGroup.group_id == membership.group_id,
            UserGroup.id != membership.id,
        )
        other_owners = self.store.count(
            UserGroup, *others, UserGroup.role == ROLE_OWNER
        )
        other_members = self.store.count(UserGroup, *others)
        return other_owners == 0 and other_members > 0

    def update(self, membership_id: uuid.UUID, patch: UserGroupPatch) -> UserGroup:
        with self.store.perform():
            membership = self._require(UserGroup, membership_id, "Membership")
            if (
                "role" in patch.model_fields_set
                and patch.role != ROLE_OWNER
                and self._is_last_owner(membership)
            ):
                raise GuardViolation(
                    "Cannot demote the last owner of a group that still has members"
                )
            self._apply_patch(membership, patch)
            self.store.save()
        self._invalidate(self.writes)
        return membership

    def delete(self, membership_id: uuid.UUID) -> None:
        with self.store.perform():
            membership = self._require(UserGroup, membership_id, "Membership")
            if self._is_last_owner(membership):
                raise GuardViolation(
                    "Cannot remove the last owner of a group that still has members"
                )
            self.store.delete(membership)
            self.store.save()
        self._invalidate(self.writes)
        logger.info(f"membership_deleted: id={membership_id}")

    def for_user(self, user_id: uuid.UUID) -> list[UserGroup]:
        return self._cached_data(
            CacheKeys.Memberships.user_user_groups.key(user_id),
            lambda: self.store.fetch(
                UserGroup, UserGroup.user_id == user_id, order_by=USER_GROUP_ORDER
            ),
        )

    def for_group(self, group_id: uuid.UUID) -> list[UserGroup]:
        return self._cached_data(
            CacheKeys.Memberships.group_user_groups.key(group_id),
            lambda: self.store.fetch(
                UserGroup, UserGroup.group_id == group_id, order_by=USER_GROUP_ORDER
            ),
        )

    def users_in_group(self, group_id: uuid.UUID) -> list[User]:
        stmt = (
            select(User)
            .join(UserGroup, UserGroup.user_id == User.id)
            .where(UserGroup.group_id == group_id)
            .order_by(*USER_GROUP_ORDER)
        )
        return self._cached_data(
            CacheKeys.Memberships.users_in_group.key(group_id),
            lambda: self.store.fetch_statement(stmt),
        )

    def groups_for_user(self, user_id: uuid.UUID) -> list[Group]:
        stmt = (
            select(Group)
            .join(UserGroup, UserGroup.group_id == Group.id)
            .where(UserGroup.user_id == user_id)
            .order_by(*USER_GROUP_ORDER)
        )
        return self._cached_data(
            CacheKeys.Memberships.groups_for_user.key(user_id),
            lambda: self.store.fetch_statement(stmt),
        )

    def is_member(self, user_id: uuid.UUID, group_id: uuid.UUID) -> bool:
        return self._cached_validation(
            CacheKeys.Memberships.is_member.key(user_id, group_id),
            lambda: self.store.count(
                UserGroup,
                UserGroup.user_id == user_id,
                UserGroup.group_id == group_id,
            )
            > 0,
        )

    def owners(self, group_id: uuid.UUID) -> list[UserGroup]:
        return [m for m in self.for_group(group_id) if m.is_owner]

    def count(self) -> int:
        return self._cached_data(
            CacheKeys.Memberships.user_group_count.key(),
            lambda: self.store.count(UserGroup),
        )


class Services:
    """One instance of every entity service over a shared store and cache."""

    def __init__(self, store: Store, cache: Cache) -> None:
        self.users = UserService(store, cache)
        self.groups = GroupService(store, cache)
        self.categories = CategoryService(store, cache)
        self.entries = EntryService(store, cache)
        self.items = ItemService(store, cache)
        self.memberships = UserGroupService(store, cache)
