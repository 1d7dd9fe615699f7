"""
Request payloads for the admin-services API

Each resource maps to a MongoDB collection:
- gallery_events
- event_categories (read-only, seeded)
- team_members
- user_manuals
- users
- platform_insights (single document)

Create payloads carry defaults for everything but the required field. Update
payloads list the mutable fields only; unknown keys are dropped and
model_dump(exclude_unset=True) keeps the update partial.
"""
import math
from typing import Annotated, Any, List, Optional

from pydantic import BaseModel, BeforeValidator, Field

from validation import INT64_MAX, INT64_MIN, clamp_int64


def _order_or_zero(value):
    if isinstance(value, int) and not isinstance(value, bool):
        return clamp_int64(value)
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    if not math.isfinite(number):
        return 0
    if number >= INT64_MAX:
        return INT64_MAX
    if number <= INT64_MIN:
        return INT64_MIN
    return int(number)


Order = Annotated[int, BeforeValidator(_order_or_zero)]


# Gallery events
class GalleryEventCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    date: Optional[str] = None
    end_date: Optional[str] = None
    location: Optional[str] = None
    images: Optional[List[str]] = None
    category: Optional[str] = None
    link: Optional[str] = None
    status: Optional[str] = None
    attendees: Optional[int] = Field(None, ge=0)


class GalleryEventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    date: Optional[str] = None
    end_date: Optional[str] = None
    location: Optional[str] = None
    images: Optional[List[str]] = None
    category: Optional[str] = None
    link: Optional[str] = None
    status: Optional[str] = None
    attendees: Optional[int] = Field(None, ge=0)


# Team members
class TeamMemberCreate(BaseModel):
    name: Optional[str] = None
    affiliation: Optional[str] = None
    affiliation_link: Optional[str] = None
    position1: Optional[str] = None
    position1_link: Optional[str] = None
    position2: Optional[str] = None
    position2_link: Optional[str] = None
    avatar_url: Optional[str] = None
    scholar_url: Optional[str] = None
    linkedin_url: Optional[str] = None
    order: Order = 0
    published: Optional[bool] = True


class TeamMemberUpdate(BaseModel):
    name: Optional[str] = None
    affiliation: Optional[str] = None
    affiliation_link: Optional[str] = None
    position1: Optional[str] = None
    position1_link: Optional[str] = None
    position2: Optional[str] = None
    position2_link: Optional[str] = None
    avatar_url: Optional[str] = None
    scholar_url: Optional[str] = None
    linkedin_url: Optional[str] = None
    order: Optional[Order] = None
    published: Optional[bool] = None


# User manuals
class UserManualCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    manual_pdf_url: Optional[str] = None
    order: Order = 0
    published: Optional[bool] = True


class UserManualUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    manual_pdf_url: Optional[str] = None
    order: Optional[Order] = None
    published: Optional[bool] = None


# Users (passwordHash is server-side only, never part of a payload or response)
class UserCreate(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class UserUpdate(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


class LoginPayload(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None


# Platform insights: values are coerced, never rejected
class InsightsUpsertPayload(BaseModel):
    total_users: Any = None
    total_publications: Any = None
