"""
Typed failures raised by the identity core.

Each failure carries a stable machine code, a caller-safe message and the
HTTP status the boundary layer maps it to. The core never returns None to
signal failure.
"""

from typing import Optional


class AuthError(Exception):
    """Base class for all identity-core failures."""

    code: str = "AUTH_ERROR"
    status_code: int = 400
    default_message: str = "Authentication error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class ValidationFailed(AuthError):
    code = "VALIDATION_FAILED"
    status_code = 400
    default_message = "Invalid input"


class DuplicateAccount(AuthError):
    """A uniqueness constraint on the identity store was violated."""

    code = "DUPLICATE_ACCOUNT"
    status_code = 409
    default_message = "Account already exists"


class DuplicateEmail(DuplicateAccount):
    code = "DUPLICATE_EMAIL"
    default_message = "Email is already registered"


class DuplicateUsername(DuplicateAccount):
    code = "DUPLICATE_USERNAME"
    default_message = "Username is already taken"


class DuplicateFederatedSubject(DuplicateAccount):
    code = "DUPLICATE_FEDERATED_SUBJECT"
    default_message = "This Google account is already linked"


class InvalidCredentials(AuthError):
    code = "INVALID_CREDENTIALS"
    status_code = 401
    default_message = "Invalid credentials"


class WrongAuthMethod(AuthError):
    """A password operation was attempted on a federated account."""

    code = "WRONG_AUTH_METHOD"
    status_code = 400
    default_message = "This account was created with Google. Please sign in with Google instead."


class MethodMismatch(AuthError):
    """A federated sign-in targeted an account that uses a password."""

    code = "METHOD_MISMATCH"
    status_code = 400
    default_message = (
        "This email is already registered with a password. "
        "Please sign in with your email and password instead."
    )


class AccountDeactivated(AuthError):
    code = "ACCOUNT_DEACTIVATED"
    status_code = 403
    default_message = "Account is deactivated"


class InvalidAssertion(AuthError):
    code = "INVALID_ASSERTION"
    status_code = 401
    default_message = "Invalid Google credential"


class EmailUnverified(AuthError):
    code = "EMAIL_UNVERIFIED"
    status_code = 400
    default_message = "Email not verified by Google"


class ProviderUnavailable(AuthError):
    code = "PROVIDER_UNAVAILABLE"
    status_code = 503
    default_message = "Identity provider is unreachable"


class InvalidRefreshToken(AuthError):
    """Forged, expired, rotated-away or orphaned; deliberately not told apart."""

    code = "INVALID_REFRESH_TOKEN"
    status_code = 401
    default_message = "Invalid or expired refresh token"


class IncorrectPassword(AuthError):
    code = "INCORRECT_PASSWORD"
    status_code = 400
    default_message = "Current password is incorrect"


class NotFound(AuthError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "User not found"


class Forbidden(AuthError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "Admin access required"


class Internal(AuthError):
    """Unexpected store or crypto failure; details stay in the logs."""

    code = "INTERNAL"
    status_code = 500
    default_message = "Internal server error"


# Token engine classifications


class TokenError(AuthError):
    code = "TOKEN_INVALID"
    status_code = 401
    default_message = "Invalid token"


class TokenInvalid(TokenError):
    pass


class TokenExpired(TokenError):
    code = "TOKEN_EXPIRED"
    default_message = "Token has expired"


class WrongPurpose(TokenError):
    code = "TOKEN_WRONG_PURPOSE"
    default_message = "Token was not issued for this purpose"
