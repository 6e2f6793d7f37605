"""Error taxonomy shared by every bounded context."""


class RegistryError(Exception):
    """Base class for all domain-level errors."""
    pass


class ValidationError(RegistryError):
    """Malformed or missing input. Fixable by the caller, never retried."""
    pass


class Conflict(RegistryError):
    """Identifier (drug code or manufacturer id) already taken."""
    pass


class NotFound(RegistryError):
    """Referenced code, manufacturer or notification does not exist."""
    pass


class BackendUnavailable(RegistryError):
    """
    Transient infrastructure failure, including timeouts.

    The effect of the failed call is unknown. Safe to retry for reads and for
    creation (keyed by code); not safe to retry blindly for appends or status
    changes.
    """
    pass


class Unauthorized(RegistryError):
    """Privileged command issued without the admin capability."""
    pass
