# core/exceptions.py
"""
Error taxonomy shared by the account and file services.

Remote SDK errors are logged where they happen and re-raised as one of these,
so the web layer only has to map a handful of types to responses.
"""


class StoreItError(Exception):
    """Base class for all StoreIt service errors."""
    pass


class DeliveryError(StoreItError):
    """The identity provider refused to send a passcode to the given email."""
    pass


class VerificationError(StoreItError):
    """A passcode was wrong, expired, or could not be exchanged for a session."""
    pass


class ConflictError(StoreItError):
    """Sign-up attempted for an email that already has a user record."""
    pass


class NotFoundError(StoreItError):
    """A user or file record the caller asked for does not exist."""
    pass


class RemoteFailure(StoreItError):
    """An underlying Supabase call (auth, database or storage) failed."""
    pass
