from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ResourceStatus(str, Enum):
    AVAILABLE = "available"
    CLAIMED = "claimed"
    REMOVED = "removed"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)
    name: str
    password_hash: str
    is_admin: bool = False


class Resource(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(foreign_key="user.id", index=True)

    name: str
    category: str
    description: str = ""
    images: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    quantity: int = 1
    location: str = ""
    status: ResourceStatus = ResourceStatus.AVAILABLE
    created_at: datetime = Field(default_factory=utcnow)


class Request(SQLModel, table=True):
    # donor_id and resource_id carry no foreign keys: a request outlives the
    # resource (and the donor account) it was made against.
    __tablename__ = "resource_request"
    __table_args__ = (
        UniqueConstraint("requester_id", "resource_id", name="uq_request_requester_resource"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    requester_id: int = Field(foreign_key="user.id", index=True)
    donor_id: int = Field(index=True)
    resource_id: int = Field(index=True)

    # snapshot of the resource at request time
    resource_name: str
    category: str
    description: str = ""
    images: List[str] = Field(default_factory=list, sa_column=Column(JSON))

    created_at: datetime = Field(default_factory=utcnow)
