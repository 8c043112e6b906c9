"""
Pathway Admin - Error Taxonomy

Store failures, synchronous validation failures, identity failures with a
fixed code set, and the single user-facing message a failed mutation surfaces.
"""
from typing import Optional


class StoreError(Exception):
    """Network or document store failure."""


class DocumentNotFoundError(StoreError):
    """Write targeted a document that does not exist."""

    def __init__(self, path: str):
        super().__init__(f"No document to update: {path}")
        self.path = path


class IndexMissingError(StoreError):
    """The backend cannot serve this filter/order combination."""


class ValidationError(Exception):
    """Input rejected before any network call."""


class ServiceError(Exception):
    """A failed operation, carrying the message shown to the admin."""


# =============================================================================
# IDENTITY ERROR CODES
# =============================================================================

WRONG_PASSWORD = "auth/wrong-password"
WEAK_PASSWORD = "auth/weak-password"
EMAIL_IN_USE = "auth/email-already-in-use"
TOO_MANY_REQUESTS = "auth/too-many-requests"
NETWORK_FAILURE = "auth/network-request-failed"
REQUIRES_RECENT_LOGIN = "auth/requires-recent-login"
USER_NOT_FOUND = "auth/user-not-found"
INVALID_EMAIL = "auth/invalid-email"
USER_DISABLED = "auth/user-disabled"


class IdentityError(Exception):
    """Identity/credential failure with one of the fixed codes above."""

    def __init__(self, code: str, message: Optional[str] = None):
        super().__init__(message or code)
        self.code = code


# Messages for the sign-in form
SIGN_IN_MESSAGES = {
    USER_NOT_FOUND: "No account found with this email address.",
    WRONG_PASSWORD: "Incorrect password. Please try again.",
    INVALID_EMAIL: "Invalid email address format.",
    USER_DISABLED: "This account has been disabled. Please contact support.",
    TOO_MANY_REQUESTS: "Too many failed login attempts. Please try again later.",
}

# Messages for the change-password form
PASSWORD_CHANGE_MESSAGES = {
    WRONG_PASSWORD: "Current password is incorrect.",
    WEAK_PASSWORD: "The new password is too weak.",
    REQUIRES_RECENT_LOGIN: "Please log in again and then change your password.",
    NETWORK_FAILURE: "Network error. Please check your connection.",
    TOO_MANY_REQUESTS: "Too many requests. Please try again later.",
}

# Messages for admin-initiated account creation
ACCOUNT_CREATION_MESSAGES = {
    EMAIL_IN_USE: "An account already exists with this email address.",
    INVALID_EMAIL: "Invalid email address.",
    WEAK_PASSWORD: "Password should be at least 6 characters.",
}

# Messages for the password reset form
PASSWORD_RESET_MESSAGES = {
    USER_NOT_FOUND: "No account found with this email address.",
    INVALID_EMAIL: "Invalid email address format.",
}


def user_facing_message(error: Exception, messages: dict, default: Optional[str] = None) -> str:
    """
    Map a failure to the string shown to the admin.

    Known identity codes use the supplied table; anything else falls through
    to the raw message, then to `default`.
    """
    code = getattr(error, "code", None)
    if code and code in messages:
        return messages[code]
    raw = str(error)
    if raw and raw != code:
        return raw
    return default or raw
