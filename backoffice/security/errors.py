"""
Error taxonomy for identity resolution, sessions and the id migrator.

Endpoints translate these into ``HTTPException`` responses; none of them
carries information about which credential strategy came closest to
matching.
"""

GENERIC_LOGIN_FAILURE = "Invalid Credentials. Please check your ID and Password."
ACCESS_DISABLED_MESSAGE = "Portal access is disabled for this client."
EMAIL_NOT_REGISTERED = "Access Denied: This email is not registered in our system."
PROVIDER_FAILURE = "Authentication provider unavailable. Please try again later."


class IdentityError(Exception):
    """Base class for identity subsystem errors."""

    default_message = "Authentication failed."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class InvalidCredentials(IdentityError):
    """No credential strategy matched."""

    default_message = GENERIC_LOGIN_FAILURE


class AccessDisabled(IdentityError):
    """Matched a client whose portal access is turned off."""

    default_message = ACCESS_DISABLED_MESSAGE


class ProviderError(IdentityError):
    """The external auth provider failed or returned unusable data."""

    default_message = PROVIDER_FAILURE


class RecordNotFound(IdentityError):
    """Session restore found no canonical record for the stored identity."""

    default_message = "Session is no longer valid."


class MigrationWriteFailure(IdentityError):
    """An employee id migration batch failed to commit."""

    default_message = "Employee id migration batch failed."


class IllegalTransition(IdentityError):
    """A routing transition the portal state machine does not allow."""

    default_message = "Illegal routing transition."
