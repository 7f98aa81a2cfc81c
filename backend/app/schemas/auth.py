"""
Pydantic schemas for OTP login and registration.

Field names on the wire are camelCase; Python attributes are snake_case.
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from app.schemas.common import ApiResponse


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


OTP_LENGTH = 6


# Password login


class PasswordLoginRequest(_CamelModel):
    identifier: str = Field(..., description="Username or email")
    password: str

    @field_validator("identifier")
    @classmethod
    def identifier_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Username or email is required")
        return v

    @field_validator("password")
    @classmethod
    def password_required(cls, v: str) -> str:
        if not v:
            raise ValueError("Password is required")
        return v


class OtpVerifyRequest(_CamelModel):
    email: EmailStr
    otp: str

    @field_validator("otp")
    @classmethod
    def otp_length(cls, v: str) -> str:
        if len(v) != OTP_LENGTH:
            raise ValueError("OTP must be 6 digits")
        return v


class ResendRequest(_CamelModel):
    email: EmailStr


class EmailOtpRequest(_CamelModel):
    email: EmailStr


class SendOtpResponse(ApiResponse):
    email: Optional[str] = None


class LoginVerifyResponse(ApiResponse):
    session_token: Optional[str] = Field(default=None, alias="sessionToken")


class EmailLoginVerifyResponse(ApiResponse):
    email: str
    session_token: str = Field(..., alias="sessionToken")


# Session exchange


class SessionExchangeRequest(_CamelModel):
    email: EmailStr
    session_token: str = Field(..., alias="sessionToken", min_length=1)


class SessionExchangeResponse(ApiResponse):
    access_token: str = Field(..., alias="accessToken")
    token_type: str = Field(default="bearer", alias="tokenType")


# Student registration


class StudentRegistrationRequest(_CamelModel):
    first_name: str = Field(..., alias="firstName", min_length=2, max_length=50, pattern=r"^[a-zA-Z\s]+$")
    last_name: str = Field(..., alias="lastName", min_length=2, max_length=50, pattern=r"^[a-zA-Z\s]+$")
    username: str = Field(..., min_length=3, max_length=20, pattern=r"^[a-zA-Z0-9_]+$")
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=100)
    confirm_password: Optional[str] = Field(default=None, alias="confirmPassword")

    @model_validator(mode="after")
    def passwords_match(self):
        if self.confirm_password is not None and self.confirm_password != self.password:
            raise ValueError("Passwords must match")
        return self
