"""
Database Schemas for the Portfolio Platform

Each Pydantic model = one MongoDB collection (lowercased class name).
Documents are stored with camelCase keys (``portfolioData``, ``userId``, ...);
attributes stay snake_case and are aliased on dump.
"""
from datetime import datetime
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel

ADMIN_ROLE = "admin"

ImageType = Literal["gallery", "thumbnail", "project", "profile"]
SkillCategory = Literal["Frontend", "Backend", "Database", "DevOps", "Mobile", "Design", "Other"]
Proficiency = Literal["Beginner", "Intermediate", "Advanced", "Expert"]
ContactStatus = Literal["new", "read", "replied"]
EventType = Literal[
    "page_view",
    "project_click",
    "contact_form_view",
    "contact_form_submit",
    "image_view",
    "skill_view",
    "external_link_click",
]

CONTACT_STATUSES = ("new", "read", "replied")
EVENT_TYPES = (
    "page_view",
    "project_click",
    "contact_form_view",
    "contact_form_submit",
    "image_view",
    "skill_view",
    "external_link_click",
)


class Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, arbitrary_types_allowed=True)


# Account and embedded portfolio profile
class StoredAsset(Document):
    url: str = ""
    public_id: str = ""


class SocialLinks(Document):
    github: str = ""
    linkedin: str = ""
    twitter: str = ""
    website: str = ""


class Theme(Document):
    primary_color: str = "#3b82f6"
    secondary_color: str = "#8b5cf6"
    background_color: str = "#ffffff"
    text_color: str = "#1f2937"


class PortfolioData(Document):
    full_name: str = Field(..., min_length=1)
    bio: str = ""
    title: str = "Full-Stack Developer"
    location: str = ""
    contact_email: Optional[str] = None
    phone: str = ""
    profile_picture: StoredAsset = Field(default_factory=StoredAsset)
    social_links: SocialLinks = Field(default_factory=SocialLinks)
    theme: Theme = Field(default_factory=Theme)
    is_public: bool = True
    show_analytics: bool = False
    custom_domain: Optional[str] = None


class User(Document):
    username: str = Field(..., description="Unique handle for the public portfolio URL")
    email: EmailStr
    password: str = Field(..., description="bcrypt hash")
    role: str = ADMIN_ROLE
    portfolio_data: PortfolioData
    is_default_user: bool = False


# Content
class Project(Document):
    title: str
    description: str
    skills: List[str] = Field(default_factory=list)
    thumbnail: Optional[str] = None
    thumbnail_public_id: Optional[str] = None
    live_link: Optional[str] = None
    github_link: Optional[str] = None
    user_id: ObjectId
    featured: bool = False
    order: int = 0


class Image(Document):
    url: str
    public_id: str
    filename: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    type: ImageType = "gallery"
    project_id: Optional[ObjectId] = None
    is_active: bool = True
    uploaded_by: ObjectId
    user_id: ObjectId


class Music(Document):
    title: str
    artist: str
    url: str
    public_id: str
    duration: Optional[float] = None
    is_default: bool = False
    uploaded_by: ObjectId
    user_id: ObjectId


class Skill(Document):
    name: str
    category: SkillCategory
    proficiency: Proficiency
    icon: Optional[str] = None
    color: Optional[str] = None
    description: Optional[str] = None
    user_id: ObjectId


class Contact(Document):
    name: str
    email: EmailStr
    message: str
    status: ContactStatus = "new"
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    user_id: ObjectId


class CV(Document):
    filename: str
    original_name: str
    url: str
    public_id: str
    file_size: int = 0
    title: str = "CV"
    description: str = ""
    version: int = 1
    is_active: bool = True
    user_id: ObjectId


# Analytics
class ClickPosition(Document):
    x: float
    y: float


class AnalyticsMetadata(Document):
    user_agent: str = ""
    ip_address: Optional[str] = None
    referrer: str = ""
    session_id: Optional[str] = None
    duration: Optional[float] = None
    click_position: Optional[ClickPosition] = None
    device_type: str = "desktop"
    country: Optional[str] = None
    city: Optional[str] = None


class Analytics(Document):
    type: EventType
    page: Optional[str] = None
    project_id: Optional[ObjectId] = None
    image_id: Optional[ObjectId] = None
    skill_id: Optional[ObjectId] = None
    user_id: ObjectId
    metadata: AnalyticsMetadata = Field(default_factory=AnalyticsMetadata)


class DeviceInfo(Document):
    type: str = "desktop"
    browser: str = "Unknown"
    os: str = "Unknown"
    device: str = "desktop"


class VisitorSession(Document):
    session_id: str
    ip_address: Optional[str] = None
    user_agent: str = ""
    first_visit: datetime
    last_activity: datetime
    page_views: int = 1
    is_active: bool = True
    referrer: str = ""
    country: Optional[str] = None
    city: Optional[str] = None
    device_info: DeviceInfo = Field(default_factory=DeviceInfo)
    user_id: ObjectId
