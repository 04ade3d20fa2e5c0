import datetime as dt
import uuid
from decimal import Decimal
from typing import Any, ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import ROLE_MEMBER


class UserIn(BaseModel):
    name: Optional[str] = Field(default=None, max_length=100)
    email: str = Field(..., min_length=1, max_length=100)


class GroupIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, max_length=9)
    group_id: uuid.UUID


class EntryIn(BaseModel):
    description: Optional[str] = None
    date: dt.date
    group_id: uuid.UUID
    category_id: Optional[uuid.UUID] = None


class ItemIn(BaseModel):
    description: Optional[str] = None
    amount: Decimal
    quantity: int = 1
    entry_id: uuid.UUID


class UserGroupIn(BaseModel):
    user_id: uuid.UUID
    group_id: uuid.UUID
    role: str = Field(default=ROLE_MEMBER, min_length=1, max_length=20)


class Patch(BaseModel):
    """Partial update: only fields the caller set are applied.

    An omitted field is left unchanged; a field set to ``None`` is cleared,
    unless it is listed in ``not_nullable``.
    """

    model_config = ConfigDict(extra="forbid")

    not_nullable: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def _reject_cleared_required(self) -> "Patch":
        for name in self.not_nullable:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self

    def changes(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}


class UserPatch(Patch):
    not_nullable = ("email",)

    name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, min_length=1, max_length=100)


class GroupPatch(Patch):
    not_nullable = ("name", "currency")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)


class CategoryPatch(Patch):
    not_nullable = ("name", "color")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, max_length=9)


class EntryPatch(Patch):
    not_nullable = ("date",)

    description: Optional[str] = None
    date: Optional[dt.date] = None
    category_id: Optional[uuid.UUID] = None


class ItemPatch(Patch):
    not_nullable = ("amount", "quantity")

    description: Optional[str] = None
    amount: Optional[Decimal] = None
    quantity: Optional[int] = None


class UserGroupPatch(Patch):
    not_nullable = ("role",)

    role: Optional[str] = Field(default=None, min_length=1, max_length=20)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: Optional[str]
    email: str
    created_at: dt.datetime
    last_modified_at: Optional[dt.datetime]


class GroupOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    currency: str
    created_at: dt.datetime
    last_modified_at: Optional[dt.datetime]


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    color: str
    group_id: uuid.UUID
    created_at: dt.datetime
    last_modified_at: Optional[dt.datetime]


class EntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    description: Optional[str]
    date: dt.date
    group_id: uuid.UUID
    category_id: Optional[uuid.UUID]
    created_at: dt.datetime
    last_modified_at: Optional[dt.datetime]


class ItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    description: Optional[str]
    amount: Decimal
    quantity: int
    entry_id: uuid.UUID
    created_at: dt.datetime
    last_modified_at: Optional[dt.datetime]


class UserGroupOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: uuid.UUID
    group_id: uuid.UUID
    role: str
    joined_at: dt.datetime


class TotalOut(BaseModel):
    scope_id: uuid.UUID
    total: Decimal


class CacheStatsOut(BaseModel):
    data_count: int
    validation_count: int
    calculation_count: int
