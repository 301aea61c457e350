import logging
from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, Request, status
from sqlalchemy import select

from examquest.api.deps import CurrentUser, DBSession, SessionRegistry
from examquest.core.config import Settings
from examquest.core.security import (
    CONFIRM_EMAIL_PURPOSE,
    PASSWORD_RESET_PURPOSE,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from examquest.db.models import AuthCredential, LogLevel, ProfileRole, User
from examquest.schemas.auth import (
    EmailRequest,
    LoginRequest,
    MessageResponse,
    PasswordResetConfirmRequest,
    RegisterRequest,
    TokenConfirmRequest,
    TokenResponse,
    UserRead,
)
from examquest.services.accounts import get_or_create_profile, username_taken
from examquest.services.audit import record_system_log
from examquest.services.outbox import MailOutbox

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_response(user: User, settings: Settings) -> TokenResponse:
    token = create_access_token(
        subject=user.id,
        secret_key=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expires_minutes=settings.access_token_expire_minutes,
    )
    return TokenResponse(
        access_token=token,
        expires_in=settings.access_token_expire_minutes * 60,
        user=UserRead.model_validate(user),
    )


def _send_confirmation(user: User, settings: Settings, outbox: MailOutbox) -> None:
    token = create_access_token(
        subject=user.id,
        secret_key=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expires_minutes=settings.confirmation_token_expire_minutes,
        purpose=CONFIRM_EMAIL_PURPOSE,
    )
    outbox.send(
        kind=CONFIRM_EMAIL_PURPOSE,
        to=user.email,
        subject="Confirm your email address",
        token=token,
    )


def _subject_for(token: str, settings: Settings, purpose: str) -> str:
    try:
        payload = decode_access_token(
            token=token,
            secret_key=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            purpose=purpose,
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired token",
        ) from exc
    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid token subject")
    return subject


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    request: Request,
    db: DBSession,
) -> TokenResponse:
    email = payload.email.lower()
    existing = await db.scalar(select(User).where(User.email == email))
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")
    if payload.username and await username_taken(db, payload.username):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already taken")

    settings = request.app.state.settings
    user = User(email=email)
    credential = AuthCredential(
        user=user,
        password_hash=hash_password(payload.password),
    )
    db.add_all([user, credential])
    await db.flush()

    role = ProfileRole.user
    if email in {item.lower() for item in settings.bootstrap_admin_emails}:
        role = ProfileRole.admin
    await get_or_create_profile(db, user, username=payload.username, role=role)
    record_system_log(db, message="User registered", source="auth", user_id=user.id)
    await db.commit()
    await db.refresh(user)

    _send_confirmation(user, settings, request.app.state.outbox)
    return _token_response(user, settings)


@router.post("/login", response_model=TokenResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    db: DBSession,
) -> TokenResponse:
    email = payload.email.lower()
    user = await db.scalar(select(User).where(User.email == email))
    credential = None
    if user is not None:
        credential = await db.scalar(select(AuthCredential).where(AuthCredential.user_id == user.id))
    if user is None or credential is None or not verify_password(
        payload.password, credential.password_hash
    ):
        record_system_log(
            db,
            message="Failed login attempt",
            source="auth",
            level=LogLevel.warning,
            details={"email": email},
        )
        await db.commit()
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    settings = request.app.state.settings
    if settings.require_email_confirmation and user.email_confirmed_at is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Email not confirmed")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account disabled")

    await get_or_create_profile(db, user)
    record_system_log(db, message="User signed in", source="auth", user_id=user.id)
    await db.commit()
    await db.refresh(user)
    return _token_response(user, settings)


@router.get("/me", response_model=UserRead)
async def me(current_user: CurrentUser) -> UserRead:
    return UserRead.model_validate(current_user)


@router.post("/logout", response_model=MessageResponse)
async def logout(current_user: CurrentUser, registry: SessionRegistry) -> MessageResponse:
    await registry.end(current_user.id)
    return MessageResponse(detail="Signed out")


@router.post("/confirm-email", response_model=UserRead)
async def confirm_email(
    payload: TokenConfirmRequest,
    request: Request,
    db: DBSession,
) -> UserRead:
    subject = _subject_for(payload.token, request.app.state.settings, CONFIRM_EMAIL_PURPOSE)
    user = await db.scalar(select(User).where(User.id == subject))
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if user.email_confirmed_at is None:
        user.email_confirmed_at = datetime.now(UTC)
        await db.commit()
        await db.refresh(user)
    return UserRead.model_validate(user)


@router.post(
    "/resend-confirmation",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def resend_confirmation(
    payload: EmailRequest,
    request: Request,
    db: DBSession,
) -> MessageResponse:
    user = await db.scalar(select(User).where(User.email == payload.email.lower()))
    if user is not None and user.email_confirmed_at is None:
        _send_confirmation(user, request.app.state.settings, request.app.state.outbox)
    return MessageResponse(detail="If the account exists, a confirmation email was sent")


@router.post(
    "/password-reset",
    response_model=MessageResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def request_password_reset(
    payload: EmailRequest,
    request: Request,
    db: DBSession,
) -> MessageResponse:
    user = await db.scalar(select(User).where(User.email == payload.email.lower()))
    if user is not None:
        settings = request.app.state.settings
        token = create_access_token(
            subject=user.id,
            secret_key=settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
            expires_minutes=settings.password_reset_token_expire_minutes,
            purpose=PASSWORD_RESET_PURPOSE,
        )
        request.app.state.outbox.send(
            kind=PASSWORD_RESET_PURPOSE,
            to=user.email,
            subject="Reset your password",
            token=token,
        )
    return MessageResponse(detail="If the account exists, a reset email was sent")


@router.post("/password-reset/confirm", response_model=MessageResponse)
async def confirm_password_reset(
    payload: PasswordResetConfirmRequest,
    request: Request,
    db: DBSession,
) -> MessageResponse:
    subject = _subject_for(payload.token, request.app.state.settings, PASSWORD_RESET_PURPOSE)
    credential = await db.scalar(select(AuthCredential).where(AuthCredential.user_id == subject))
    if credential is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    credential.password_hash = hash_password(payload.new_password)
    credential.password_updated_at = datetime.now(UTC)
    record_system_log(db, message="Password reset", source="auth", user_id=subject)
    await db.commit()
    logger.info("Password reset for user %s", subject)
    return MessageResponse(detail="Password updated")
