import uuid

import pytest

from errors import GuardViolation, NotFoundError
from models import ROLE_MEMBER, ROLE_OWNER
from schemas import UserGroupIn, UserGroupPatch, UserIn


@pytest.fixture
def people(services):
    return [
        services.users.create(UserIn(name=name, email=f"{name.lower()}@example.com"))
        for name in ("Ann", "Ben", "Cid")
    ]


def join(services, user, group, role=ROLE_MEMBER):
    return services.memberships.create(
        UserGroupIn(user_id=user.id, group_id=group.id, role=role)
    )


def test_join_group(services, people, make_group) -> None:
    ann, ben, _ = people
    group = make_group()
    assert services.memberships.is_member(ann.id, group.id) is False

    owner = join(services, ann, group, ROLE_OWNER)
    join(services, ben, group)

    assert owner.is_owner
    assert owner.joined_at is not None
    assert services.memberships.is_member(ann.id, group.id) is True
    assert [u.name for u in services.memberships.users_in_group(group.id)] == [
        "Ann",
        "Ben",
    ]
    assert [g.id for g in services.memberships.groups_for_user(ben.id)] == [group.id]
    assert [m.user_id for m in services.memberships.owners(group.id)] == [ann.id]
    assert services.memberships.count() == 2
    assert len(services.memberships.for_user(ann.id)) == 1


def test_join_requires_user_and_group(services, people, make_group) -> None:
    group = make_group()
    with pytest.raises(NotFoundError):
        services.memberships.create(
            UserGroupIn(user_id=uuid.uuid4(), group_id=group.id)
        )
    with pytest.raises(NotFoundError):
        services.memberships.create(
            UserGroupIn(user_id=people[0].id, group_id=uuid.uuid4())
        )


def test_last_owner_cannot_leave_while_members_remain(
    services, people, make_group
) -> None:
    ann, ben, _ = people
    group = make_group()
    owner = join(services, ann, group, ROLE_OWNER)
    member = join(services, ben, group)

    with pytest.raises(GuardViolation):
        services.memberships.delete(owner.id)
    with pytest.raises(GuardViolation):
        services.memberships.update(owner.id, UserGroupPatch(role=ROLE_MEMBER))

    assert services.memberships.is_member(ann.id, group.id) is True

    services.memberships.delete(member.id)
    services.memberships.delete(owner.id)
    assert services.memberships.for_group(group.id) == []


def test_owner_can_leave_when_another_owner_exists(
    services, people, make_group
) -> None:
    ann, ben, cid = people
    group = make_group()
    first = join(services, ann, group, ROLE_OWNER)
    join(services, ben, group, ROLE_OWNER)
    join(services, cid, group)

    services.memberships.delete(first.id)

    assert services.memberships.is_member(ann.id, group.id) is False
    assert [m.user_id for m in services.memberships.owners(group.id)] == [ben.id]


def test_promote_member(services, people, make_group) -> None:
    ann, ben, _ = people
    group = make_group()
    join(services, ann, group, ROLE_OWNER)
    member = join(services, ben, group)
    assert len(services.memberships.owners(group.id)) == 1

    services.memberships.update(member.id, UserGroupPatch(role=ROLE_OWNER))

    assert len(services.memberships.owners(group.id)) == 2


def test_membership_lists_are_cached(services, people, make_group, sever) -> None:
    ann = people[0]
    group = make_group()
    join(services, ann, group, ROLE_OWNER)
    services.memberships.users_in_group(group.id)
    services.memberships.is_member(ann.id, group.id)

    sever()

    assert [u.id for u in services.memberships.users_in_group(group.id)] == [ann.id]
    assert services.memberships.is_member(ann.id, group.id) is True


def test_leaving_clears_membership_check(services, people, make_group) -> None:
    ann, ben, _ = people
    group = make_group()
    join(services, ann, group, ROLE_OWNER)
    member = join(services, ben, group)
    assert services.memberships.is_member(ben.id, group.id) is True

    services.memberships.delete(member.id)

    assert services.memberships.is_member(ben.id, group.id) is False
    assert services.memberships.groups_for_user(ben.id) == []
    services.users.delete(ben.id)
    assert services.users.get(ben.id) is None
