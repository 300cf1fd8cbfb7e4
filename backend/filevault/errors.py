# filevault/errors.py


class ConfigurationError(RuntimeError):
    """Startup configuration is missing or invalid. The service must not start."""


class AuthenticationError(Exception):
    """Sealed content failed verification and must not be returned."""


class MalformedInputError(AuthenticationError):
    """Nonce or tag has the wrong length/encoding, or is missing entirely."""


class NotFoundError(LookupError):
    pass


class ValidationError(ValueError):
    pass
