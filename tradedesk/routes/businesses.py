"""
Business routes — a user's buyer/seller accounts.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from tradedesk.database import get_db
from tradedesk.errors import NotFound, ValidationError
from tradedesk.models import Business, User, utcnow
from tradedesk.routes.auth import (
    AuthContext, get_current_user, require_role, resolve_owned_business, validate_roles,
)
from tradedesk.serializers import business_to_dict

logger = logging.getLogger("tradedesk.businesses")

router = APIRouter(prefix="/api/v1/businesses", tags=["businesses"])


class BusinessCreate(BaseModel):
    business_name: str = Field(..., min_length=1, max_length=255)
    display_name: Optional[str] = Field(None, max_length=255)
    can_buy: Optional[bool] = None
    can_sell: Optional[bool] = None
    gst_number: Optional[str] = Field(None, max_length=15)
    pan_number: Optional[str] = Field(None, max_length=10)
    msme_number: Optional[str] = None
    description: Optional[str] = None
    address_line1: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    pincode: Optional[str] = Field(None, max_length=10)


class RoleUpdate(BaseModel):
    can_buy: bool = False
    can_sell: bool = False


class VerifyRequest(BaseModel):
    verification_level: str = Field(default="basic", pattern="^(basic|full)$")


@router.post("", status_code=201)
def create_business(
    data: BusinessCreate,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Add another business to the authenticated user."""
    can_buy, can_sell = validate_roles(data.can_buy, data.can_sell)
    if not db.query(User.id).filter(User.id == user.user_id).first():
        raise NotFound("User not found")

    business = Business(
        user_id=user.user_id,
        **data.model_dump(exclude={"can_buy", "can_sell", "country"}),
        can_buy=can_buy,
        can_sell=can_sell,
        country=data.country or "India",
    )
    db.add(business)
    db.commit()
    db.refresh(business)
    logger.info("User %s added business %s", user.user_id, business.id)
    return {"message": "Business created successfully", "business": business_to_dict(business)}


@router.get("/sellers")
def list_sellers(db: Session = Depends(get_db)):
    """Businesses that can sell. Public."""
    rows = db.query(Business).filter(Business.can_sell == True).order_by(Business.id).all()
    return {"businesses": [business_to_dict(b) for b in rows]}


@router.get("/user/{user_id}")
def list_user_businesses(user_id: int, db: Session = Depends(get_db)):
    rows = db.query(Business).filter(Business.user_id == user_id).order_by(Business.created_at.desc()).all()
    return {"businesses": [business_to_dict(b) for b in rows]}


@router.get("/{business_id}")
def get_business(business_id: int, db: Session = Depends(get_db)):
    business = db.query(Business).filter(Business.id == business_id).first()
    if not business:
        raise NotFound("Business not found")
    return {"business": business_to_dict(business)}


@router.put("/{business_id}/role")
def update_role(
    business_id: int,
    data: RoleUpdate,
    user: AuthContext = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Enable or disable buying/selling. Owner only."""
    if not data.can_buy and not data.can_sell:
        raise ValidationError("Business must have at least one role enabled")
    business = resolve_owned_business(db, user, business_id)
    business.can_buy = data.can_buy
    business.can_sell = data.can_sell
    db.commit()
    db.refresh(business)
    return {"message": "Business role updated successfully", "business": business_to_dict(business)}


@router.put("/{business_id}/verify")
def verify_business(
    business_id: int,
    data: VerifyRequest,
    admin: AuthContext = Depends(require_role("admin")),
    db: Session = Depends(get_db),
):
    """Mark a business as verified. Admin only."""
    business = db.query(Business).filter(Business.id == business_id).first()
    if not business:
        raise NotFound("Business not found")
    business.is_verified = True
    business.verification_level = data.verification_level
    business.verified_at = utcnow()
    business.verified_by = admin.user_id
    db.commit()
    db.refresh(business)
    logger.info("Business %s verified (%s) by admin %s", business.id, data.verification_level, admin.user_id)
    return {"message": "Business verified successfully", "business": business_to_dict(business)}
