"""
Authentication routes and access helpers — JWT bearer tokens.

Flow:
  1. Register → creates User + first Business in one transaction, returns token
  2. Login → validates credentials, returns token + profile + businesses
  3. Admins create users directly; the first admin is seeded from settings

The token carries {sub (user id), role, email}. The business a caller acts as
is NOT in the token: clients assert it via `business_id` (query or body) or the
`X-Business-Id` header, and every handler verifies ownership before use.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, List

import bcrypt
from fastapi import APIRouter, Depends, Header, Query, Request
from jose import jwt, JWTError, ExpiredSignatureError
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from tradedesk.config import Settings
from tradedesk.database import get_db
from tradedesk.errors import (
    Unauthorized, TokenExpired, InvalidToken, Forbidden, ValidationError, Conflict, NotFound,
)
from tradedesk.models import User, Business, utcnow
from tradedesk.serializers import user_to_dict, business_to_dict

logger = logging.getLogger("tradedesk.auth")

router = APIRouter(prefix="/api/v1/users", tags=["users"])


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))


# ═══════════════════════════════════════════════
#  TOKENS
# ═══════════════════════════════════════════════

class AuthContext(BaseModel):
    user_id: int
    role: str
    email: Optional[str] = None
    business_id: Optional[int] = None


def create_access_token(user: User, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode = {"sub": str(user.id), "role": user.role, "email": user.email, "exp": expire, "type": "access"}
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def authenticate(token: Optional[str], settings: Settings) -> AuthContext:
    """Decode a bearer token into an AuthContext or raise an auth error."""
    if not token:
        raise Unauthorized()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        raise TokenExpired()
    except JWTError:
        raise InvalidToken()

    if payload.get("type") != "access" or not payload.get("sub"):
        raise InvalidToken()
    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise InvalidToken()
    return AuthContext(user_id=user_id, role=payload.get("role") or "business_owner", email=payload.get("email"))


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def parse_id(value, field: str = "id") -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a numeric id")


def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    x_business_id: Optional[str] = Header(None),
    business_id_q: Optional[str] = Query(None, alias="business_id"),
) -> AuthContext:
    """Dependency: bearer token required."""
    auth = authenticate(bearer_token(authorization), request.app.state.settings)
    auth.business_id = parse_id(business_id_q or x_business_id, "business_id")
    return auth


def get_optional_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    x_business_id: Optional[str] = Header(None),
    business_id_q: Optional[str] = Query(None, alias="business_id"),
) -> Optional[AuthContext]:
    """Dependency for routes that also serve guests (cart)."""
    token = bearer_token(authorization)
    if not token:
        return None
    return get_current_user(request, authorization, x_business_id, business_id_q)


def require_role(*roles: str):
    """Dependency factory: caller's role must be one of `roles`."""
    def role_checker(user: AuthContext = Depends(get_current_user)) -> AuthContext:
        if user.role not in roles:
            raise Forbidden(f"Access denied. Required roles: {', '.join(roles)}")
        return user

    return role_checker


def resolve_owned_business(
    db: Session,
    user: AuthContext,
    business_id=None,
    *,
    can_sell: bool = False,
    can_buy: bool = False,
) -> Business:
    """The business the caller acts as, after checking it belongs to them."""
    bid = parse_id(business_id, "business_id") if business_id is not None else user.business_id
    if bid is None:
        raise ValidationError("business_id is required")
    business = db.query(Business).filter(Business.id == bid).first()
    if not business:
        raise NotFound("Business not found")
    if business.user_id != user.user_id:
        raise Forbidden("You do not own this business")
    if can_sell and not business.can_sell:
        raise Forbidden("This business is not allowed to sell")
    if can_buy and not business.can_buy:
        raise Forbidden("This business is not allowed to buy")
    return business


def validate_roles(can_buy: Optional[bool], can_sell: Optional[bool]):
    buy = True if can_buy is None else can_buy
    sell = bool(can_sell)
    if not buy and not sell:
        raise ValidationError("Business must have at least one role: buyer or seller")
    return buy, sell


# ═══════════════════════════════════════════════
#  SCHEMAS
# ═══════════════════════════════════════════════

class RegisterRequest(BaseModel):
    email: Optional[str] = Field(None, max_length=200)
    password: Optional[str] = Field(None, max_length=100)
    full_name: Optional[str] = Field(None, max_length=200)
    phone: Optional[str] = Field(None, max_length=20)
    business_name: Optional[str] = Field(None, max_length=255)
    can_buy: Optional[bool] = None
    can_sell: Optional[bool] = None
    gst_number: Optional[str] = None
    pan_number: Optional[str] = None
    msme_number: Optional[str] = None
    description: Optional[str] = None
    address_line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    pincode: Optional[str] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class AuthResponse(BaseModel):
    message: str
    token: str
    token_type: str = "bearer"
    user: dict
    businesses: List[dict] = []


# ═══════════════════════════════════════════════
#  REGISTER / LOGIN
# ═══════════════════════════════════════════════

@router.post("/register", status_code=201, response_model=AuthResponse)
def register(data: RegisterRequest, request: Request, db: Session = Depends(get_db)):
    """Register a user together with their first business."""
    missing = [f for f in ("email", "password", "full_name", "business_name", "phone") if not getattr(data, f)]
    if missing:
        raise ValidationError(
            "Missing required fields: email, password, full_name, business_name, phone",
            missing=missing,
        )
    can_buy, can_sell = validate_roles(data.can_buy, data.can_sell)

    email = data.email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise Conflict("User with this email already exists")

    user = User(
        email=email,
        password_hash=hash_password(data.password),
        full_name=data.full_name,
        phone=data.phone,
        role="business_owner",
    )
    try:
        db.add(user)
        db.flush()
        business = Business(
            user_id=user.id,
            business_name=data.business_name,
            can_buy=can_buy,
            can_sell=can_sell,
            gst_number=data.gst_number,
            pan_number=data.pan_number,
            msme_number=data.msme_number,
            description=data.description,
            address_line1=data.address_line1,
            city=data.city,
            state=data.state,
            country=data.country or "India",
            pincode=data.pincode,
        )
        db.add(business)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("User with this email already exists")

    db.refresh(user)
    db.refresh(business)
    logger.info("Registered user %s with business %s", user.id, business.id)
    return AuthResponse(
        message="User and business registered successfully",
        token=create_access_token(user, request.app.state.settings),
        user=user_to_dict(user),
        businesses=[business_to_dict(business)],
    )


@router.post("/login", response_model=AuthResponse)
def login(data: LoginRequest, request: Request, db: Session = Depends(get_db)):
    """Validate email + password and return a bearer token."""
    if not data.email or not data.password:
        raise ValidationError("Email and password are required")

    user = db.query(User).filter(User.email == data.email.strip().lower()).first()
    if not user or not verify_password(data.password, user.password_hash):
        raise Unauthorized("Invalid email or password")
    if user.status != "active":
        raise Forbidden("Account is disabled")

    user.last_login = utcnow()
    db.commit()
    db.refresh(user)

    return AuthResponse(
        message="Login successful",
        token=create_access_token(user, request.app.state.settings),
        user=user_to_dict(user),
        businesses=[business_to_dict(b) for b in user.businesses],
    )


@router.get("/me")
def get_me(user: AuthContext = Depends(get_current_user), db: Session = Depends(get_db)):
    """Profile of the authenticated user with their businesses."""
    db_user = db.query(User).filter(User.id == user.user_id).first()
    if not db_user:
        raise Unauthorized("User not found")
    return {
        "user": user_to_dict(db_user),
        "businesses": [business_to_dict(b) for b in db_user.businesses],
    }


# ═══════════════════════════════════════════════
#  ADMIN USERS
# ═══════════════════════════════════════════════

class CreateUserRequest(BaseModel):
    email: Optional[str] = Field(None, max_length=200)
    password: Optional[str] = Field(None, max_length=100)
    full_name: Optional[str] = Field(None, max_length=200)
    phone: Optional[str] = Field(None, max_length=20)
    role: str = Field("business_owner", pattern="^(business_owner|admin)$")
    status: str = Field("active", pattern="^(active|inactive)$")
    is_verified: bool = False


def seed_admin(db: Session, settings: Settings) -> Optional[User]:
    """Create the bootstrap admin from ADMIN_EMAIL / ADMIN_PASSWORD if it is missing."""
    if not settings.admin_email or not settings.admin_password:
        return None
    email = settings.admin_email.strip().lower()
    user = db.query(User).filter(User.email == email).first()
    if user:
        return user
    user = User(
        email=email,
        password_hash=hash_password(settings.admin_password),
        full_name="Administrator",
        role="admin",
        is_verified=True,
    )
    db.add(user)
    db.commit()
    logger.info("Seeded admin user %s", email)
    return user


@router.post("/create", status_code=201)
def create_user(
    data: CreateUserRequest,
    admin: AuthContext = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Create a user directly, without a business. Admin only."""
    if not data.email or not data.password or not data.full_name:
        raise ValidationError("Missing required fields: email, password, full_name")
    email = data.email.strip().lower()
    if db.query(User).filter(User.email == email).first():
        raise Conflict("User with this email already exists")

    user = User(
        email=email,
        password_hash=hash_password(data.password),
        full_name=data.full_name,
        phone=data.phone,
        role=data.role,
        status=data.status,
        is_verified=data.is_verified,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Admin %s created %s user %s", admin.user_id, user.role, user.id)
    return {"message": "User created successfully", "user": user_to_dict(user)}
