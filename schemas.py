"""
Database Schemas

Pydantic models for the MongoDB collections of the CFA backend.
Each model represents a collection; the collection name is the model name
converted to lowercase:
- User -> "user"
- Admin -> "admin"
- Plan -> "plan"
- Payment -> "payment"
- Media -> "media"

Stored keys are snake_case. Request bodies arrive camelCase, so request
models derive from ApiModel which generates the camelCase aliases.
"""

from datetime import datetime
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

NormalizedEmail = Annotated[EmailStr, AfterValidator(lambda v: v.strip().lower())]

SubscriptionStatus = Literal["active", "inactive", "pending"]
PaymentStatus = Literal["pending", "completed", "failed"]
MediaType = Literal["article", "video", "banner", "podcast", "update", "alert"]
AdminRole = Literal["admin", "super_admin"]


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Member(ApiModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: Optional[NormalizedEmail] = None
    mobile: Optional[str] = None


class OTPChallenge(BaseModel):
    code: str
    expires_at: datetime


class UserSubscription(BaseModel):
    plan_id: Optional[str] = None
    plan_name: Optional[str] = None
    status: SubscriptionStatus = "inactive"
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    payment_id: Optional[str] = None
    amount: Optional[float] = None


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    full_name: str = Field("", description="Full name")
    email: Optional[EmailStr] = Field(None, description="Unique, lowercased")
    mobile_number: Optional[str] = Field(None, description="Unique, used by the SMS flow")
    password_hash: Optional[str] = Field(None, description="bcrypt hash")
    customer_id: str = Field(..., description="<prefix>_<4 digits>")
    is_verified: bool = False
    otp: Optional[OTPChallenge] = None
    reset_password_token: Optional[str] = None
    reset_password_expires: Optional[datetime] = None
    subscription: UserSubscription = Field(default_factory=UserSubscription)
    additional_members: List[Member] = Field(default_factory=list)
    last_login: Optional[datetime] = None
    is_active: bool = True


class Admin(BaseModel):
    """
    Admins collection schema
    Collection name: "admin"
    """
    username: str = Field(..., description="Unique login name")
    email: Optional[EmailStr] = None
    password_hash: str
    role: AdminRole = "admin"
    is_active: bool = True
    last_login: Optional[datetime] = None


class Plan(BaseModel):
    """
    Subscription plan catalog
    Collection name: "plan"
    """
    plan_id: str = Field(..., description="Unique plan slug")
    plan_name: str
    description: str
    price: float = Field(..., ge=0)
    special_price: Optional[float] = Field(None, ge=0)
    duration: int = Field(..., ge=1, description="Duration in months")
    max_members: int = Field(1, ge=1)
    features: List[str] = Field(default_factory=list)
    is_active: bool = True
    is_special_offer: bool = False
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None


class Payment(BaseModel):
    """
    Payments collection schema, one document per gateway order
    Collection name: "payment"
    """
    user_id: str
    subscription_id: str = Field(..., description="Plan document id")
    razorpay_order_id: str
    razorpay_payment_id: Optional[str] = None
    amount: float = Field(..., ge=0)
    currency: str = "INR"
    additional_members: List[Member] = Field(default_factory=list)
    status: PaymentStatus = "pending"


class Media(BaseModel):
    """
    Media content collection schema
    Collection name: "media"
    """
    title: str
    description: str
    type: MediaType
    content: str
    media_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    is_published: bool = False
    is_broadcast: bool = False
    published_at: Optional[datetime] = None
    view_count: int = 0
    created_by: str = Field(..., description="Admin id")
    is_active: bool = True
