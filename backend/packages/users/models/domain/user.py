from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr


class User(BaseModel):
    id: int
    auth_user_id: str
    email: EmailStr
    full_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    last_login_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserCreateModel(BaseModel):
    """Model for creating a new user."""

    auth_user_id: str
    email: EmailStr
    full_name: Optional[str] = None


class UserUpdateModel(BaseModel):
    """Model for updating a user."""

    email: Optional[EmailStr] = None
    full_name: Optional[str] = None
    last_login_at: Optional[datetime] = None
