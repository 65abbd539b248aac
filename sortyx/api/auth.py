"""
Authentication Router
Bearer-JWT login, registration and profile endpoints.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

from sortyx.config import AuthConfig
from sortyx.errors import AuthError
from sortyx.models.database import DatabaseManager, utc_now_iso
from sortyx.models.repository import USERS
from sortyx.models.schemas import LoginRequest, RegisterRequest, TokenResponse, UserUpdate

LOGGER = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)

router = APIRouter(prefix="/auth")


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user: dict[str, Any], config: AuthConfig) -> str:
    now = datetime.now(tz=UTC)
    payload = {
        "sub": user["id"],
        "email": user["email"],
        "iat": now,
        "exp": now + timedelta(hours=config.token_expiry_hours),
    }
    return jwt.encode(payload, config.jwt_secret, algorithm=config.algorithm)


def decode_access_token(token: str, config: AuthConfig) -> dict[str, Any]:
    try:
        return jwt.decode(token, config.jwt_secret, algorithms=[config.algorithm])
    except jwt.PyJWTError as exc:
        raise AuthError("Invalid or expired token") from exc


def public_user(user: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in user.items() if key != "password_hash"}


def find_user_by_email(db: DatabaseManager, email: str) -> dict[str, Any] | None:
    rows = db.query(USERS, {"email": email.strip().lower()}, limit=1)
    return rows[0] if rows else None


def create_user(
    db: DatabaseManager,
    *,
    email: str,
    password: str,
    full_name: str | None = None,
    role: str = "user",
    plan: str = "free",
) -> dict[str, Any]:
    normalized = email.strip().lower()
    return db.insert(
        USERS,
        {
            "email": normalized,
            "password_hash": hash_password(password),
            "full_name": full_name or normalized.split("@")[0],
            "role": role,
            "subscription_plan": plan,
            "applicationId": None,
            "smartbin_order": [],
            "email_alert_enabled": True,
            "sms_alert_enabled": False,
            "whatsapp_alert_enabled": False,
            "alert_email": normalized,
            "alert_phone": "",
            "created_at": utc_now_iso(),
        },
    )


def ensure_admin_user(db: DatabaseManager, config: AuthConfig) -> None:
    if not config.admin_email or not config.admin_password:
        return
    if find_user_by_email(db, config.admin_email):
        return
    create_user(
        db,
        email=config.admin_email,
        password=config.admin_password,
        full_name="Admin User",
        role="admin",
        plan="premium",
    )
    LOGGER.info("Seeded admin account %s", config.admin_email)


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict[str, Any]:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_access_token(credentials.credentials, request.app.state.config.auth)
    except AuthError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    user = request.app.state.db.get(USERS, str(payload.get("sub")))
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest, request: Request) -> TokenResponse:
    db = request.app.state.db
    user = find_user_by_email(db, payload.email)
    if not user or not verify_password(payload.password, user["password_hash"]):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    token = create_access_token(user, request.app.state.config.auth)
    return TokenResponse(token=token, user=public_user(user))


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, request: Request) -> dict[str, Any]:
    db = request.app.state.db
    if find_user_by_email(db, payload.email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists")

    user = create_user(db, email=payload.email, password=payload.password, full_name=payload.full_name)
    token = create_access_token(user, request.app.state.config.auth)
    LOGGER.info("Registered user %s", user["email"])
    return {"token": token, "user": public_user(user), "message": "Registration successful"}


@router.get("/me")
async def read_me(user: dict[str, Any] = Depends(get_current_user)) -> dict[str, Any]:
    return public_user(user)


@router.put("/me")
async def update_me(
    payload: UserUpdate,
    request: Request,
    user: dict[str, Any] = Depends(get_current_user),
) -> dict[str, Any]:
    changes = payload.model_dump(exclude_unset=True, by_alias=True)
    changes["updated_at"] = utc_now_iso()
    updated = request.app.state.db.update(USERS, user["id"], changes)
    if updated is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return public_user(updated)
