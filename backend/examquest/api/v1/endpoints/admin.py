import csv
import io
import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy import delete, func, or_, select

from examquest.api.deps import AdminUser, DBSession, Profiles, SessionRegistry, get_admin_user
from examquest.core.security import hash_password
from examquest.db.models import (
    AuthCredential,
    ContentItem,
    ContentItemStatus,
    ContentItemType,
    LogLevel,
    Profile,
    ProfileRole,
    SystemLog,
    SystemSetting,
    User,
)
from examquest.schemas.admin import (
    AdminDashboardRead,
    AdminPanelRead,
    AdminProfileUpdate,
    AdminStatsRead,
    AdminUserCreate,
    AdminUserList,
    BulkDeleteResponse,
    BulkIdsRequest,
    ContentItemCreate,
    ContentItemRead,
    ContentItemUpdate,
    NameValue,
    SystemLogRead,
    SystemSettingRead,
    SystemSettingsUpdate,
)
from examquest.schemas.profile import ProfileRead
from examquest.services.accounts import get_or_create_profile, username_taken
from examquest.services.admin_stats import chapter_completion, user_growth, xp_distribution
from examquest.services.audit import record_system_log
from examquest.services.profile_store import ProfileStore, ProfileStoreError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(get_admin_user)])

CSV_COLUMNS = ["id", "username", "email", "role", "xp", "created_at"]
RECENT_USERS_LIMIT = 5
RECENT_LOGS_LIMIT = 20


def _name_values(rows: list[tuple[str, int]]) -> list[NameValue]:
    return [NameValue(name=name, value=value) for name, value in rows]


async def _all_profiles(db: DBSession) -> list[Profile]:
    return list(await db.scalars(select(Profile).order_by(Profile.created_at)))


async def _get_profile_or_404(db: DBSession, user_id: str) -> Profile:
    profile = await db.scalar(select(Profile).where(Profile.id == user_id))
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return profile


async def _delete_profile(profiles: ProfileStore, user_id: str) -> None:
    try:
        await profiles.delete(user_id)
    except ProfileStoreError as exc:
        logger.exception("Could not delete profile %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Profile store unavailable",
        ) from exc


async def _build_stats(db: DBSession) -> AdminStatsRead:
    profiles = await _all_profiles(db)
    return AdminStatsRead(
        xp_distribution=_name_values(xp_distribution(profiles)),
        chapter_completion=_name_values(chapter_completion(profiles)),
        user_growth=_name_values(user_growth(profiles)),
    )


async def _build_dashboard(db: DBSession) -> AdminDashboardRead:
    profiles = await _all_profiles(db)
    total_xp = sum(profile.xp for profile in profiles)
    pending = await db.scalar(
        select(func.count(ContentItem.id)).where(ContentItem.status == ContentItemStatus.pending)
    )
    recent = sorted(profiles, key=lambda profile: profile.created_at, reverse=True)
    return AdminDashboardRead(
        user_count=len(profiles),
        admin_count=sum(1 for profile in profiles if profile.role == ProfileRole.admin),
        total_xp=total_xp,
        average_xp=round(total_xp / len(profiles), 2) if profiles else 0.0,
        completed_chapters=sum(len(profile.chapters_completed) for profile in profiles),
        pending_moderation=pending or 0,
        recent_users=[ProfileRead.model_validate(p) for p in recent[:RECENT_USERS_LIMIT]],
    )


@router.get("/dashboard", response_model=AdminDashboardRead)
async def get_dashboard(db: DBSession) -> AdminDashboardRead:
    return await _build_dashboard(db)


@router.get("/stats", response_model=AdminStatsRead)
async def get_stats(db: DBSession) -> AdminStatsRead:
    return await _build_stats(db)


@router.get("/panel", response_model=AdminPanelRead)
async def get_panel(db: DBSession) -> AdminPanelRead:
    logs = await db.scalars(
        select(SystemLog).order_by(SystemLog.created_at.desc()).limit(RECENT_LOGS_LIMIT)
    )
    return AdminPanelRead(
        dashboard=await _build_dashboard(db),
        stats=await _build_stats(db),
        recent_logs=[SystemLogRead.model_validate(log) for log in logs],
    )


@router.get("/users", response_model=AdminUserList)
async def list_users(
    db: DBSession,
    search: str | None = Query(default=None, max_length=320),
    role: ProfileRole | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> AdminUserList:
    query = select(Profile)
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.where(
            or_(func.lower(Profile.username).like(pattern), func.lower(Profile.email).like(pattern))
        )
    if role is not None:
        query = query.where(Profile.role == role)

    total = await db.scalar(select(func.count()).select_from(query.subquery()))
    profiles = await db.scalars(
        query.order_by(Profile.created_at.desc()).limit(limit).offset(offset)
    )
    return AdminUserList(
        total=total or 0,
        items=[ProfileRead.model_validate(profile) for profile in profiles],
    )


@router.post("/users", response_model=ProfileRead, status_code=status.HTTP_201_CREATED)
async def create_user(payload: AdminUserCreate, admin: AdminUser, db: DBSession) -> ProfileRead:
    email = payload.email.lower()
    if await db.scalar(select(User.id).where(User.email == email)):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")
    if await username_taken(db, payload.username):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already taken")

    user = User(email=email, email_confirmed_at=datetime.now(UTC))
    credential = AuthCredential(user=user, password_hash=hash_password(payload.password))
    db.add_all([user, credential])
    await db.flush()
    profile = await get_or_create_profile(db, user, username=payload.username, role=payload.role)
    record_system_log(
        db,
        message="User created by admin",
        source="admin",
        level=LogLevel.success,
        user_id=admin.id,
        details={"target_user_id": user.id},
    )
    await db.commit()
    await db.refresh(profile)
    return ProfileRead.model_validate(profile)


@router.get("/users/export")
async def export_users(db: DBSession) -> Response:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for profile in await _all_profiles(db):
        writer.writerow(
            [
                profile.id,
                profile.username,
                profile.email or "",
                profile.role.value,
                profile.xp,
                profile.created_at.isoformat(),
            ]
        )
    filename = f"users_{datetime.now(UTC).date().isoformat()}.csv"
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/users/bulk-delete", response_model=BulkDeleteResponse)
async def bulk_delete_users(
    payload: BulkIdsRequest,
    admin: AdminUser,
    db: DBSession,
    registry: SessionRegistry,
    profiles: Profiles,
) -> BulkDeleteResponse:
    ids = [user_id for user_id in dict.fromkeys(payload.ids) if user_id != admin.id]
    if not ids:
        return BulkDeleteResponse(deleted=0)

    existing = list(await db.scalars(select(User.id).where(User.id.in_(ids))))
    for user_id in existing:
        await registry.end(user_id, flush=False)
        await _delete_profile(profiles, user_id)
    await db.execute(delete(AuthCredential).where(AuthCredential.user_id.in_(existing)))
    await db.execute(delete(User).where(User.id.in_(existing)))
    record_system_log(
        db,
        message=f"Bulk deleted {len(existing)} users",
        source="admin",
        level=LogLevel.warning,
        user_id=admin.id,
        details={"target_user_ids": existing},
    )
    await db.commit()
    logger.info("Admin %s deleted %d users", admin.id, len(existing))
    return BulkDeleteResponse(deleted=len(existing))


@router.get("/users/{user_id}", response_model=ProfileRead)
async def get_user(user_id: str, db: DBSession) -> ProfileRead:
    return ProfileRead.model_validate(await _get_profile_or_404(db, user_id))


@router.patch("/users/{user_id}", response_model=ProfileRead)
async def update_user(
    user_id: str,
    payload: AdminProfileUpdate,
    admin: AdminUser,
    db: DBSession,
    registry: SessionRegistry,
) -> ProfileRead:
    # Settle the player's live session first so their pending writes cannot
    # overwrite the edit.
    await registry.end(user_id)
    profile = await _get_profile_or_404(db, user_id)

    changes = payload.model_dump(exclude_unset=True)
    username = changes.get("username")
    if username is not None and username != profile.username:
        if await username_taken(db, username, exclude_user_id=user_id):
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already taken")
    for field in ("chapters_completed", "badges", "titles"):
        if changes.get(field) is not None:
            changes[field] = list(dict.fromkeys(changes[field]))
    for field, value in changes.items():
        if value is not None:
            setattr(profile, field, value)

    record_system_log(
        db,
        message="Profile updated by admin",
        source="admin",
        user_id=admin.id,
        details={"target_user_id": user_id, "fields": sorted(changes)},
    )
    await db.commit()
    await db.refresh(profile)
    return ProfileRead.model_validate(profile)


@router.delete("/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(
    user_id: str,
    admin: AdminUser,
    db: DBSession,
    registry: SessionRegistry,
    profiles: Profiles,
) -> Response:
    if user_id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admins cannot delete their own account",
        )
    user = await db.scalar(select(User).where(User.id == user_id))
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    await registry.end(user_id, flush=False)
    await _delete_profile(profiles, user_id)
    await db.execute(delete(AuthCredential).where(AuthCredential.user_id == user_id))
    await db.execute(delete(User).where(User.id == user_id))
    record_system_log(
        db,
        message="User deleted by admin",
        source="admin",
        level=LogLevel.warning,
        user_id=admin.id,
        details={"target_user_id": user_id},
    )
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/content", response_model=list[ContentItemRead])
async def list_content(
    db: DBSession,
    search: str | None = Query(default=None, max_length=200),
    status_filter: ContentItemStatus | None = Query(default=None, alias="status"),
    item_type: ContentItemType | None = Query(default=None, alias="type"),
) -> list[ContentItemRead]:
    query = select(ContentItem)
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.where(
            or_(
                func.lower(ContentItem.title).like(pattern),
                func.lower(ContentItem.content).like(pattern),
            )
        )
    if status_filter is not None:
        query = query.where(ContentItem.status == status_filter)
    if item_type is not None:
        query = query.where(ContentItem.item_type == item_type)
    items = await db.scalars(query.order_by(ContentItem.created_at.desc()))
    return [ContentItemRead.model_validate(item) for item in items]


@router.post("/content", response_model=ContentItemRead, status_code=status.HTTP_201_CREATED)
async def create_content(payload: ContentItemCreate, db: DBSession) -> ContentItemRead:
    item = ContentItem(**payload.model_dump())
    db.add(item)
    await db.commit()
    await db.refresh(item)
    return ContentItemRead.model_validate(item)


async def _get_content_or_404(db: DBSession, item_id: str) -> ContentItem:
    item = await db.scalar(select(ContentItem).where(ContentItem.id == item_id))
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Content not found")
    return item


@router.patch("/content/{item_id}", response_model=ContentItemRead)
async def update_content(
    item_id: str,
    payload: ContentItemUpdate,
    admin: AdminUser,
    db: DBSession,
) -> ContentItemRead:
    item = await _get_content_or_404(db, item_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(item, field, value)
    if payload.status is not None:
        record_system_log(
            db,
            message=f"Content {payload.status.value}",
            source="moderation",
            user_id=admin.id,
            details={"content_id": item_id},
        )
    await db.commit()
    await db.refresh(item)
    return ContentItemRead.model_validate(item)


@router.delete("/content/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_content(item_id: str, db: DBSession) -> Response:
    item = await _get_content_or_404(db, item_id)
    await db.delete(item)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/logs", response_model=list[SystemLogRead])
async def list_logs(
    db: DBSession,
    level: LogLevel | None = None,
    search: str | None = Query(default=None, max_length=200),
    limit: int = Query(default=100, ge=1, le=1000),
) -> list[SystemLogRead]:
    query = select(SystemLog)
    if level is not None:
        query = query.where(SystemLog.level == level)
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.where(
            or_(
                func.lower(SystemLog.message).like(pattern),
                func.lower(SystemLog.source).like(pattern),
            )
        )
    logs = await db.scalars(query.order_by(SystemLog.created_at.desc()).limit(limit))
    return [SystemLogRead.model_validate(log) for log in logs]


@router.get("/settings", response_model=list[SystemSettingRead])
async def list_settings(db: DBSession) -> list[SystemSettingRead]:
    rows = await db.scalars(select(SystemSetting).order_by(SystemSetting.category, SystemSetting.key))
    return [SystemSettingRead.model_validate(row) for row in rows]


@router.put("/settings", response_model=list[SystemSettingRead])
async def update_settings(
    payload: SystemSettingsUpdate,
    admin: AdminUser,
    db: DBSession,
) -> list[SystemSettingRead]:
    rows = {
        row.key: row
        for row in await db.scalars(
            select(SystemSetting).where(SystemSetting.key.in_(list(payload.values)))
        )
    }
    unknown = sorted(set(payload.values) - set(rows))
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown settings: {', '.join(unknown)}",
        )
    for key, value in payload.values.items():
        rows[key].value = value
    record_system_log(
        db,
        message="System settings updated",
        source="admin",
        user_id=admin.id,
        details={"keys": sorted(payload.values)},
    )
    await db.commit()
    return await list_settings(db)
