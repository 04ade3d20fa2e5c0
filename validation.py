"""Input rules the callers enforce before handing data to the services.

The services only report whether a name or email is taken; rejecting a
duplicate is decided here.
"""

import re
import uuid
from decimal import Decimal
from typing import Optional

from errors import ValidationError
from schemas import (
    CategoryIn,
    CategoryPatch,
    GroupIn,
    GroupPatch,
    ItemIn,
    ItemPatch,
    UserGroupIn,
    UserIn,
    UserPatch,
)
from services import Services

MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 50
MIN_EMAIL_LENGTH = 5
MAX_EMAIL_LENGTH = 100

AVAILABLE_CURRENCIES = (
    "USD",
    "EUR",
    "GBP",
    "JPY",
    "CAD",
    "AUD",
    "CHF",
    "CNY",
    "MXN",
    "BRL",
    "INR",
    "KRW",
)

EMAIL_RE = re.compile(r"^[A-Z0-9a-z._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,64}$")
COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}([0-9A-Fa-f]{2})?$")


def validate_name(name: str, field: str = "name") -> str:
    clean = name.strip()
    if not clean:
        raise ValidationError("Name is required", field)
    if len(clean) < MIN_NAME_LENGTH:
        raise ValidationError(
            f"Name must be at least {MIN_NAME_LENGTH} characters", field
        )
    if len(clean) > MAX_NAME_LENGTH:
        raise ValidationError(
            f"Name must be at most {MAX_NAME_LENGTH} characters", field
        )
    return clean


def validate_email(email: str) -> str:
    clean = email.strip()
    if not EMAIL_RE.match(clean):
        raise ValidationError("Please enter a valid email", "email")
    if len(clean) < MIN_EMAIL_LENGTH or len(clean) > MAX_EMAIL_LENGTH:
        raise ValidationError(
            f"Email must be between {MIN_EMAIL_LENGTH} and "
            f"{MAX_EMAIL_LENGTH} characters",
            "email",
        )
    return clean


def validate_currency(currency: str) -> str:
    code = currency.strip().upper()
    if code not in AVAILABLE_CURRENCIES:
        raise ValidationError("Please select a valid currency", "currency")
    return code


def validate_color(color: Optional[str]) -> None:
    if color is not None and not COLOR_RE.match(color):
        raise ValidationError("Color must be a hex value like #007AFF", "color")


def validate_amount(amount: Decimal) -> None:
    if not amount.is_finite():
        raise ValidationError("Amount must be a number", "amount")
    if amount < 0:
        raise ValidationError("Amount must be zero or greater", "amount")


def validate_quantity(quantity: int) -> None:
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", "quantity")


class Validator:
    def __init__(self, services: Services) -> None:
        self.services = services

    def new_user(self, data: UserIn) -> None:
        if data.name:
            validate_name(data.name)
        email = validate_email(data.email)
        if self.services.users.exists(email):
            raise ValidationError("A user with this email already exists", "email")

    def user_update(self, user_id: uuid.UUID, patch: UserPatch) -> None:
        if patch.name:
            validate_name(patch.name)
        if "email" in patch.model_fields_set:
            email = validate_email(patch.email)
            if self.services.users.exists(email, excluding_id=user_id):
                raise ValidationError(
                    "A user with this email already exists", "email"
                )

    def new_group(self, data: GroupIn) -> None:
        name = validate_name(data.name)
        if data.currency is not None:
            validate_currency(data.currency)
        if self.services.groups.exists(name):
            raise ValidationError("A group with this name already exists", "name")

    def group_update(self, group_id: uuid.UUID, patch: GroupPatch) -> None:
        if "currency" in patch.model_fields_set:
            validate_currency(patch.currency)
        if "name" in patch.model_fields_set:
            name = validate_name(patch.name)
            if self.services.groups.exists(name, excluding_id=group_id):
                raise ValidationError(
                    "A group with this name already exists", "name"
                )

    def new_category(self, data: CategoryIn) -> None:
        name = validate_name(data.name)
        validate_color(data.color)
        if self.services.categories.exists(name, group_id=data.group_id):
            raise ValidationError(
                "A category with this name already exists in the group", "name"
            )

    def category_update(self, category_id: uuid.UUID, patch: CategoryPatch) -> None:
        if "color" in patch.model_fields_set:
            validate_color(patch.color)
        if "name" in patch.model_fields_set:
            name = validate_name(patch.name)
            category = self.services.categories.get(category_id)
            # An unknown id is reported as not found by the update itself.
            if category is not None and self.services.categories.exists(
                name, group_id=category.group_id, excluding_id=category_id
            ):
                raise ValidationError(
                    "A category with this name already exists in the group", "name"
                )

    def new_item(self, data: ItemIn) -> None:
        validate_amount(data.amount)
        validate_quantity(data.quantity)

    def item_update(self, patch: ItemPatch) -> None:
        if "amount" in patch.model_fields_set:
            validate_amount(patch.amount)
        if "quantity" in patch.model_fields_set:
            validate_quantity(patch.quantity)

    def new_membership(self, data: UserGroupIn) -> None:
        if self.services.memberships.is_member(data.user_id, data.group_id):
            raise ValidationError("The user already belongs to this group", "user_id")
