"""
Database Schemas for the freelance marketplace

Each Pydantic model maps to a MongoDB collection.
The collection name is the lowercase of the class name.

Collections:
- User: clients, hackers and administrators
- Project: work posted by a client
- Review: a client's rating of a hacker on a project
- Application: a hacker's proposal for a project
- ContactMessage: inquiries sent through the contact form

Reference fields hold another document's ObjectId and are coerced with
`to_object_id` on the way in.
"""
from datetime import datetime, timezone
from typing import Annotated, Any, List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, BeforeValidator, ConfigDict, EmailStr, Field

from errors import InvalidIdentifier

DEFAULT_BUDGET = "$1,000 - $5,000"
DEFAULT_TIMEFRAME = "2-4 weeks"

UserType = Literal["client", "hacker", "admin"]
ProjectStatus = Literal["open", "in_progress", "completed", "cancelled"]
ApplicationStatus = Literal["pending", "accepted", "rejected"]


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> ObjectId:
    """Canonicalize an incoming identifier to an ObjectId.

    Accepts an ObjectId, its 24-char hex string, or a legacy non-negative
    integer (or shorter digit string), which is rendered as 24 hex digits.
    Anything else raises InvalidIdentifier.
    """
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str):
        candidate = value.strip()
        if len(candidate) == 24 and ObjectId.is_valid(candidate):
            return ObjectId(candidate)
        if candidate.isascii() and candidate.isdigit():
            value = int(candidate)
        else:
            raise InvalidIdentifier(value)
    if isinstance(value, int) and not isinstance(value, bool) and 0 <= value < 16 ** 24:
        return ObjectId(f"{value:024x}")
    raise InvalidIdentifier(value)


ObjectIdField = Annotated[ObjectId, BeforeValidator(to_object_id)]


class Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, extra="ignore")


class User(Document):
    username: str = Field(..., min_length=1, description="Unique login handle")
    email: EmailStr
    password: str = Field(..., min_length=1, description="Stored as provided")
    user_type: UserType
    full_name: str = Field(..., min_length=1)
    company: Optional[str] = None
    title: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    profile_image: Optional[str] = None
    is_verified: bool = False
    created_at: datetime = Field(default_factory=now_utc)


class UserUpdate(Document):
    username: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    password: Optional[str] = Field(None, min_length=1)
    user_type: Optional[UserType] = None
    full_name: Optional[str] = Field(None, min_length=1)
    company: Optional[str] = None
    title: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    profile_image: Optional[str] = None
    is_verified: Optional[bool] = None


class Project(Document):
    client_id: ObjectIdField = Field(..., description="Owning user _id")
    title: str
    description: str
    requirements: str
    budget: str = DEFAULT_BUDGET
    timeframe: str = DEFAULT_TIMEFRAME
    additional_details: Optional[str] = None
    status: ProjectStatus = "open"
    skills: List[str] = Field(default_factory=list, description="Ordered skill tags")
    created_at: datetime = Field(default_factory=now_utc)


class ProjectUpdate(Document):
    title: Optional[str] = None
    description: Optional[str] = None
    requirements: Optional[str] = None
    budget: Optional[str] = None
    timeframe: Optional[str] = None
    additional_details: Optional[str] = None
    status: Optional[ProjectStatus] = None
    skills: Optional[List[str]] = None


class Review(Document):
    project_id: ObjectIdField
    client_id: ObjectIdField
    hacker_id: ObjectIdField
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None
    featured: bool = Field(False, description="Shown as a testimonial")
    created_at: datetime = Field(default_factory=now_utc)


class Application(Document):
    project_id: ObjectIdField
    hacker_id: ObjectIdField
    proposal: str = Field(..., min_length=1)
    estimated_time: str = Field(..., min_length=1)
    price_quote: str = Field(..., min_length=1)
    status: ApplicationStatus = "pending"
    created_at: datetime = Field(default_factory=now_utc)


class ContactMessage(Document):
    name: str = Field(..., min_length=1)
    email: EmailStr
    subject: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    inquiry_type: str = Field(..., min_length=1)
    is_read: bool = False
    created_at: datetime = Field(default_factory=now_utc)
