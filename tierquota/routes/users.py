# tierquota/routes/users.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from tierquota.auth import create_jwt, hash_password, verify_password
from tierquota.config import settings
from tierquota.database import get_db
from tierquota.models import User
from tierquota.schemas import LoginRequest, LoginResponse, SignupRequest, SignupResponse

router = APIRouter(prefix="/v1/auth", tags=["auth"])


@router.post("/signup", response_model=SignupResponse)
def signup(request: SignupRequest, db: Session = Depends(get_db)):
    """Create new user account on the default tier."""
    existing = db.query(User).filter(User.email == request.email).first()
    if existing:
        raise HTTPException(status_code=400, detail="Email already registered")

    user = User(
        email=request.email,
        password_hash=hash_password(request.password),
        user_tier=settings.default_tier,
        is_premium=False,
    )
    db.add(user)
    db.commit()

    return SignupResponse(user_id=user.id, tier=user.user_tier)


@router.post("/login", response_model=LoginResponse)
def login(request: LoginRequest, db: Session = Depends(get_db)):
    """Login and get JWT token."""
    user = db.query(User).filter(User.email == request.email).first()

    if not user or not verify_password(request.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    return LoginResponse(
        token=create_jwt(user.id),
        expires_in=settings.jwt_expiry_seconds,
    )
