"""Authentication schemas for JWT tokens and user context."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class UserContext(BaseModel):
    """Authenticated user context extracted from JWT token.

    Populated by the auth dependency from the validated JWT and passed to
    every checkout and order operation as the buyer.
    """

    model_config = ConfigDict(from_attributes=True)

    user_id: UUID = Field(description="Unique identifier for the user (from JWT sub claim)")
    email: str | None = Field(default=None, description="User's email address if available")
    role: str | None = Field(default=None, description="User's role (e.g., 'authenticated', 'admin')")


class TokenPayload(BaseModel):
    """JWT token payload structure for Supabase tokens."""

    model_config = ConfigDict(from_attributes=True)

    sub: str = Field(description="Subject - the user's UUID")
    email: str | None = Field(default=None, description="User's email address")
    role: str | None = Field(default=None, description="User's role")
    exp: int = Field(description="Expiration timestamp (Unix epoch)")
    iat: int = Field(description="Issued at timestamp (Unix epoch)")
    aud: str | None = Field(default=None, description="Audience - intended recipient")
    iss: str | None = Field(default=None, description="Issuer - token issuer URL")

    @property
    def expiration_datetime(self) -> datetime:
        """Get expiration as datetime object."""
        return datetime.fromtimestamp(self.exp)

    def to_user_context(self) -> UserContext:
        """Convert token payload to UserContext.

        Returns:
            UserContext: User context derived from token claims.
        """
        return UserContext(
            user_id=UUID(self.sub),
            email=self.email,
            role=self.role,
        )
