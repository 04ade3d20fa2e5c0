import datetime as dt
import logging
import uuid
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Response
from sqlalchemy.orm import Session

from cache import Cache
from database import SessionLocal
from errors import GuardViolation, NotFoundError, StoreError, ValidationError
from scheduler import SchedulerManager
from schemas import (
    CacheStatsOut,
    CategoryIn,
    CategoryOut,
    CategoryPatch,
    EntryIn,
    EntryOut,
    EntryPatch,
    GroupIn,
    GroupOut,
    GroupPatch,
    ItemIn,
    ItemOut,
    ItemPatch,
    TotalOut,
    UserGroupIn,
    UserGroupOut,
    UserGroupPatch,
    UserIn,
    UserOut,
    UserPatch,
)
from services import Services
from store import Store
from validation import Validator

logger = logging.getLogger(__name__)

app = FastAPI(title="OMOMoney")

app_cache = Cache.from_settings()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_cache() -> Cache:
    return app_cache


def get_services(
    db: Session = Depends(get_db), cache: Cache = Depends(get_cache)
) -> Services:
    return Services(Store(db), cache)


scheduler_manager = SchedulerManager(app_cache)


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, GuardViolation):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, StoreError):
        logger.error(f"store_error: {exc}")
        return HTTPException(status_code=500, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def found(obj, label: str):
    if obj is None:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj


# Users


@app.get("/users", response_model=list[UserOut])
def list_users(services: Services = Depends(get_services)):
    return services.users.list_all()


@app.post("/users", response_model=UserOut, status_code=201)
def create_user(data: UserIn, services: Services = Depends(get_services)):
    try:
        Validator(services).new_user(data)
        return services.users.create(data)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc


@app.get("/users/{user_id}", response_model=UserOut)
def get_user(user_id: uuid.UUID, services: Services = Depends(get_services)):
    return found(services.users.get(user_id), "User")


@app.patch("/users/{user_id}", response_model=UserOut)
def update_user(
    user_id: uuid.UUID, patch: UserPatch, services: Services = Depends(get_services)
):
    try:
        Validator(services).user_update(user_id, patch)
        return services.users.update(user_id, patch)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc


@app.delete("/users/{user_id}", status_code=204)
def delete_user(user_id: uuid.UUID, services: Services = Depends(get_services)):
    try:
        services.users.delete(user_id)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/users/{user_id}/groups", response_model=list[GroupOut])
def user_groups(user_id: uuid.UUID, services: Services = Depends(get_services)):
    return services.memberships.groups_for_user(user_id)


# Groups


@app.get("/groups", response_model=list[GroupOut])
def list_groups(services: Services = Depends(get_services)):
    return services.groups.list_all()


@app.post("/groups", response_model=GroupOut, status_code=201)
def create_group(data: GroupIn, services: Services = Depends(get_services)):
    try:
        Validator(services).new_group(data)
        return services.groups.create(data)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc


@app.get("/groups/{group_id}", response_model=GroupOut)
def get_group(group_id: uuid.UUID, services: Services = Depends(get_services)):
    return found(services.groups.get(group_id), "Group")


@app.patch("/groups/{group_id}", response_model=GroupOut)
def update_group(
    group_id: uuid.UUID, patch: GroupPatch, services: Services = Depends(get_services)
):
    try:
        Validator(services).group_update(group_id, patch)
        return services.groups.update(group_id, patch)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc


@app.delete("/groups/{group_id}", status_code=204)
def delete_group(group_id: uuid.UUID, services: Services = Depends(get_services)):
    try:
        services.groups.delete(group_id)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/groups/{group_id}/categories", response_model=list[CategoryOut])
def group_categories(group_id: uuid.UUID, services: Services = Depends(get_services)):
    return services.categories.for_group(group_id)


@app.get("/groups/{group_id}/entries", response_model=list[EntryOut])
def group_entries(group_id: uuid.UUID, services: Services = Depends(get_services)):
    return services.entries.for_group(group_id)


@app.get("/groups/{group_id}/members", response_model=list[UserOut])
def group_members(group_id: uuid.UUID, services: Services = Depends(get_services)):
    return services.memberships.users_in_group(group_id)


@app.get("/groups/{group_id}/memberships", response_model=list[UserGroupOut])
def group_memberships(
    group_id: uuid.UUID, services: Services = Depends(get_services)
):
    return services.memberships.for_group(group_id)


@app.get("/groups/{group_id}/total", response_model=TotalOut)
def group_total(group_id: uuid.UUID, services: Services = Depends(get_services)):
    found(services.groups.get(group_id), "Group")
    return TotalOut(scope_id=group_id, total=services.items.total_for_group(group_id))


# Categories


@app.get("/categories", response_model=list[CategoryOut])
def list_categories(services: Services = Depends(get_services)):
    return services.categories.list_all()


@app.post("/categories", response_model=CategoryOut, status_code=201)
def create_category(data: CategoryIn, services: Services = Depends(get_services)):
    try:
        Validator(services).new_category(data)
        return services.categories.create(data)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc


@app.get("/categories/{category_id}", response_model=CategoryOut)
def get_category(category_id: uuid.UUID, services: Services = Depends(get_services)):
    return found(services.categories.get(category_id), "Category")


@app.patch("/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: uuid.UUID,
    patch: CategoryPatch,
    services: Services = Depends(get_services),
):
    try:
        Validator(services).category_update(category_id, patch)
        return services.categories.update(category_id, patch)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc


@app.delete("/categories/{category_id}", status_code=204)
def delete_category(
    category_id: uuid.UUID, services: Services = Depends(get_services)
):
    try:
        services.categories.delete(category_id)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/categories/{category_id}/entries", response_model=list[EntryOut])
def category_entries(
    category_id: uuid.UUID, services: Services = Depends(get_services)
):
    return services.entries.for_category(category_id)


# Entries


@app.get("/entries", response_model=list[EntryOut])
def list_entries(
    start: Optional[dt.date] = None,
    end: Optional[dt.date] = None,
    services: Services = Depends(get_services),
):
    if start is not None or end is not None:
        if start is None or end is None:
            raise HTTPException(
                status_code=400, detail="Both start and end are required"
            )
        return services.entries.between(start, end)
    return services.entries.list_all()


@app.post("/entries", response_model=EntryOut, status_code=201)
def create_entry(data: EntryIn, services: Services = Depends(get_services)):
    try:
        return services.entries.create(data)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc


@app.get("/entries/{entry_id}", response_model=EntryOut)
def get_entry(entry_id: uuid.UUID, services: Services = Depends(get_services)):
    return found(services.entries.get(entry_id), "Entry")


@app.patch("/entries/{entry_id}", response_model=EntryOut)
def update_entry(
    entry_id: uuid.UUID, patch: EntryPatch, services: Services = Depends(get_services)
):
    try:
        return services.entries.update(entry_id, patch)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc


@app.delete("/entries/{entry_id}", status_code=204)
def delete_entry(entry_id: uuid.UUID, services: Services = Depends(get_services)):
    try:
        services.entries.delete(entry_id)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/entries/{entry_id}/items", response_model=list[ItemOut])
def entry_items(entry_id: uuid.UUID, services: Services = Depends(get_services)):
    return services.items.for_entry(entry_id)


@app.get("/entries/{entry_id}/total", response_model=TotalOut)
def entry_total(entry_id: uuid.UUID, services: Services = Depends(get_services)):
    found(services.entries.get(entry_id), "Entry")
    return TotalOut(scope_id=entry_id, total=services.items.total_for_entry(entry_id))


# Items


@app.get("/items", response_model=list[ItemOut])
def list_items(services: Services = Depends(get_services)):
    return services.items.list_all()


@app.post("/items", response_model=ItemOut, status_code=201)
def create_item(data: ItemIn, services: Services = Depends(get_services)):
    try:
        Validator(services).new_item(data)
        return services.items.create(data)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc


@app.get("/items/{item_id}", response_model=ItemOut)
def get_item(item_id: uuid.UUID, services: Services = Depends(get_services)):
    return found(services.items.get(item_id), "Item")


@app.patch("/items/{item_id}", response_model=ItemOut)
def update_item(
    item_id: uuid.UUID, patch: ItemPatch, services: Services = Depends(get_services)
):
    try:
        Validator(services).item_update(patch)
        return services.items.update(item_id, patch)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc


@app.delete("/items/{item_id}", status_code=204)
def delete_item(item_id: uuid.UUID, services: Services = Depends(get_services)):
    try:
        services.items.delete(item_id)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


# Memberships


@app.get("/memberships", response_model=list[UserGroupOut])
def list_memberships(services: Services = Depends(get_services)):
    return services.memberships.list_all()


@app.post("/memberships", response_model=UserGroupOut, status_code=201)
def create_membership(data: UserGroupIn, services: Services = Depends(get_services)):
    try:
        Validator(services).new_membership(data)
        return services.memberships.create(data)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc


@app.patch("/memberships/{membership_id}", response_model=UserGroupOut)
def update_membership(
    membership_id: uuid.UUID,
    patch: UserGroupPatch,
    services: Services = Depends(get_services),
):
    try:
        return services.memberships.update(membership_id, patch)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc


@app.delete("/memberships/{membership_id}", status_code=204)
def delete_membership(
    membership_id: uuid.UUID, services: Services = Depends(get_services)
):
    try:
        services.memberships.delete(membership_id)
    except (ValueError, StoreError) as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


# Cache


@app.get("/api/counts")
def api_counts(services: Services = Depends(get_services)):
    return {
        "users": services.users.count(),
        "groups": services.groups.count(),
        "categories": services.categories.count(),
        "entries": services.entries.count(),
        "items": services.items.count(),
        "memberships": services.memberships.count(),
    }


@app.get("/cache/stats", response_model=CacheStatsOut)
def cache_stats(cache: Cache = Depends(get_cache)):
    stats = cache.stats()
    return CacheStatsOut(
        data_count=stats.data_count,
        validation_count=stats.validation_count,
        calculation_count=stats.calculation_count,
    )


@app.post("/cache/clear", status_code=204)
def cache_clear(cache: Cache = Depends(get_cache)):
    cache.clear_all_caches()
    logger.info("cache_cleared: source=api")
    return Response(status_code=204)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
