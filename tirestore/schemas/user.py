from pydantic import EmailStr, Field, field_validator
from typing import Literal, Optional
import re

from tirestore.schemas.base import CamelModel


def check_password_strength(v: str) -> str:
    if len(v) < 8:
        raise ValueError('Password must be at least 8 characters')
    if not re.search(r'[A-Z]', v):
        raise ValueError('Password must contain at least one uppercase letter')
    if not re.search(r'[a-z]', v):
        raise ValueError('Password must contain at least one lowercase letter')
    if not re.search(r'\d', v):
        raise ValueError('Password must contain at least one digit')
    return v


class UserRegister(CamelModel):
    name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        v = v.strip()
        if not re.match(r"^[a-zA-Z\s\-'\.]+$", v):
            raise ValueError('Name can only contain letters, spaces, hyphens, apostrophes, and periods')
        return v

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        return check_password_strength(v)


class UserLogin(CamelModel):
    # Plain strings: malformed input feeds the suspicion score instead of a 422
    email: str
    password: str
    resend_verification: bool = False


class EmailRequest(CamelModel):
    email: EmailStr


class PasswordReset(CamelModel):
    email: EmailStr
    token: str
    password: str

    @field_validator('password')
    @classmethod
    def validate_password(cls, v):
        return check_password_strength(v)


class RefreshRequest(CamelModel):
    refresh_token: Optional[str] = None


class AccountUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)


class PasswordChange(CamelModel):
    current_password: str
    new_password: str

    @field_validator('new_password')
    @classmethod
    def validate_password(cls, v):
        return check_password_strength(v)


class ProfileUpdate(CamelModel):
    name: str = Field(..., min_length=2, max_length=100)


class AddressCreate(CamelModel):
    type: Literal["billing", "shipping"]
    street: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    zip_code: str = Field(..., min_length=3, max_length=20)
    country: str = "USA"
    is_default: bool = False


class AddressUpdate(CamelModel):
    type: Optional[Literal["billing", "shipping"]] = None
    street: Optional[str] = Field(None, min_length=1, max_length=255)
    city: Optional[str] = Field(None, min_length=1, max_length=100)
    state: Optional[str] = Field(None, min_length=1, max_length=100)
    zip_code: Optional[str] = Field(None, min_length=3, max_length=20)
    country: Optional[str] = None
    is_default: Optional[bool] = None


class AdminUserUpdate(CamelModel):
    role: Optional[Literal["user", "admin"]] = None
    is_active: Optional[bool] = None
