# tierquota/auth.py
import bcrypt
import jwt
from datetime import datetime, timedelta, timezone
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session
from tierquota.config import settings
from tierquota.database import get_db
from tierquota.models import User


def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against its hash."""
    return bcrypt.checkpw(password.encode(), hashed.encode())


def create_jwt(user_id: str, expires_delta: timedelta | None = None) -> str:
    """Create a bearer token with minimal claims (sub, iat, exp)."""
    if expires_delta is None:
        expires_delta = timedelta(seconds=settings.jwt_expiry_seconds)
    now = datetime.now(timezone.utc)
    payload = {"sub": user_id, "iat": now, "exp": now + expires_delta}
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def decode_jwt(token: str) -> dict:
    """Decode and verify a bearer token."""
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=401, detail="Invalid token")


def get_current_user(
    authorization: str = Header(...),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the user from an ``Authorization: Bearer <jwt>`` header."""
    if not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Invalid authorization header")

    payload = decode_jwt(authorization[7:])
    user = db.get(User, payload.get("sub"))
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


def is_admin(user: User) -> bool:
    return bool(user.is_admin) or user.email.lower() in settings.admin_email_list


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Require admin privileges. Raises HTTPException if not admin."""
    if not is_admin(user):
        raise HTTPException(403, detail="Admin access required")
    return user
