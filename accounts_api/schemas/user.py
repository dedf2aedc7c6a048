from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from accounts_api.domain.roles import Role


class User(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    email: str
    role: Role
    phone: str | None = None
    address: str | None = None
    image: str | None = None
    company_name: str | None = None
    position_gps: str | None = None
    zone_of_responsibility: str | None = None
    is_valid: bool
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None


class _ProfileFields(BaseModel):
    phone: str | None = Field(None, max_length=64)
    address: str | None = Field(None, max_length=255)
    image: str | None = Field(None, max_length=512)
    company_name: str | None = Field(None, max_length=255)
    position_gps: str | None = Field(None, max_length=64)


class ClientCreate(_ProfileFields):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    # Accepted for compatibility but always overwritten by the target role.
    role: Role | None = None
    zone_of_responsibility: str | None = Field(None, max_length=64)


class UserCreate(ClientCreate):
    password: str = Field(..., min_length=6)


class UserUpdate(_ProfileFields):
    """Patchable profile fields. Role, zone and validity are not patchable."""

    name: str | None = Field(None, min_length=1, max_length=255)
    email: EmailStr | None = None


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: User


class UserRoleCounts(BaseModel):
    drivers: int
    admin_assistants: int


class PartnerCounts(BaseModel):
    total: int
    active: int
    inactive: int
