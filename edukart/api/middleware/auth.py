"""JWT authentication utilities for Supabase access tokens."""

from enum import Enum
from typing import Any

import jwt

from edukart.core.config import get_settings
from edukart.schemas.auth import TokenPayload

# Supabase signs access tokens for this audience
SUPABASE_AUDIENCE = "authenticated"


class AuthErrorCode(str, Enum):
    """Authentication error codes."""

    UNAUTHORIZED = "UNAUTHORIZED"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_SIGNATURE = "INVALID_SIGNATURE"


class AuthError(Exception):
    """Authentication error with specific error code.

    Raised when JWT validation fails for any reason.
    The error code indicates the specific failure reason.
    """

    def __init__(self, message: str, code: AuthErrorCode) -> None:
        """Initialize authentication error.

        Args:
            message: Human-readable error description.
            code: Specific error code for programmatic handling.
        """
        self.message = message
        self.code = code
        super().__init__(message)


def decode_jwt(token: str) -> TokenPayload:
    """Decode and validate a Supabase access token.

    Validates the HS256 signature with the project JWT secret, plus
    expiration and required claims. The audience is checked only when the
    token carries one.

    Args:
        token: The JWT token string to decode.

    Returns:
        TokenPayload: Validated token payload.

    Raises:
        AuthError: If token is invalid, expired, or has wrong signature.
    """
    settings = get_settings()

    try:
        claims = jwt.decode(token, options={"verify_signature": False})
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=["HS256"],
            audience=SUPABASE_AUDIENCE,
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_iat": True,
                "verify_aud": "aud" in claims,
                "require": ["exp", "iat", "sub"],
            },
        )

        return TokenPayload(
            sub=payload["sub"],
            email=payload.get("email"),
            role=payload.get("role"),
            exp=payload["exp"],
            iat=payload["iat"],
            aud=payload.get("aud"),
            iss=payload.get("iss"),
        )

    except jwt.ExpiredSignatureError as e:
        raise AuthError(
            "Token has expired",
            AuthErrorCode.TOKEN_EXPIRED,
        ) from e

    except jwt.InvalidSignatureError as e:
        raise AuthError(
            "Invalid token signature",
            AuthErrorCode.INVALID_SIGNATURE,
        ) from e

    except jwt.DecodeError as e:
        raise AuthError(
            f"Invalid token format: {e}",
            AuthErrorCode.INVALID_TOKEN,
        ) from e

    except jwt.MissingRequiredClaimError as e:
        raise AuthError(
            f"Token missing required claim: {e}",
            AuthErrorCode.INVALID_TOKEN,
        ) from e

    except Exception as e:
        raise AuthError(
            f"Token validation failed: {e}",
            AuthErrorCode.INVALID_TOKEN,
        ) from e
