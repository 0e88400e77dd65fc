class PresenceError(Exception):
    pass


class ValidationError(PresenceError):
    """A required field is missing or malformed."""


class PresenceNotFound(PresenceError):
    pass


class StorageError(PresenceError):
    """The persistence store could not complete an operation."""
