"""
API request and response models for the QuestRider auth endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Field constraints mirror the onboarding rules: name >= 2 chars, password
8-128 chars, phone >= 10 chars, codes are digits only.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from auth.models import AuthResult, UserSummary

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "email": "a@x.com",
                "password": "pw12345678",
                "name": "Ada",
                "phoneNumber": "1234567890",
            },
        },
        populate_by_name=True,
    )

    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    name: str = Field(min_length=2, max_length=255)
    phone_number: str = Field(min_length=10, max_length=32, alias="phoneNumber")


class VerifyOtpRequest(BaseModel):
    """Request body for POST /api/v1/auth/verify-otp.

    The exact code length is checked against OTP_LENGTH by the route; the
    pattern here only rejects non-digits early.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    otp: str = Field(pattern=r"^\d+$", min_length=4, max_length=10)


class ResendOtpRequest(BaseModel):
    """Request body for POST /api/v1/auth/resend-otp."""

    email: EmailStr


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    """Optional body for POST /api/v1/auth/refresh.

    Browsers send nothing and the refresh_token cookie is used. API clients
    that keep tokens themselves may send the token in the body instead.
    """

    refresh_token: Optional[str] = Field(default=None, max_length=4096)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class UserResponse(BaseModel):
    """Public-safe user summary. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: str
    role: str

    @classmethod
    def from_summary(cls, summary: UserSummary) -> "UserResponse":
        return cls(id=summary.id, email=summary.email, name=summary.name, role=summary.role)


class TokenPairResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class AuthResponse(BaseModel):
    """Response for verify-otp, login and refresh.

    The same tokens are also set as httpOnly cookies; browser clients can
    ignore the tokens field entirely.
    """

    model_config = ConfigDict(frozen=True)

    user: UserResponse
    tokens: TokenPairResponse

    @classmethod
    def from_result(cls, result: AuthResult, expires_in: int) -> "AuthResponse":
        return cls(
            user=UserResponse.from_summary(result.user),
            tokens=TokenPairResponse(
                access_token=result.tokens.access_token,
                refresh_token=result.tokens.refresh_token,
                expires_in=expires_in,
            ),
        )


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
