# uminai/errors.py
"""
Error types for the DID registry.

Every failure of a registry operation is raised before any state change,
so a caller that catches one of these can assume nothing was mutated.
"""

from typing import Any, Dict, Optional


class RegistryError(Exception):
    """Base class for all registry errors."""

    code = "RegistryError"

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}

    def to_dict(self) -> Dict[str, Any]:
        data = {"error": self.message, "code": self.code}
        if self.extra:
            data["extra"] = self.extra
        return data


class InvalidIdentifier(RegistryError):
    """Identifier lacks the required prefix or has nothing after it."""

    code = "InvalidIdentifier"


class AlreadyExists(RegistryError):
    """Create called on an identifier that already has a live record."""

    code = "AlreadyExists"


class NotFound(RegistryError):
    """No live record for the identifier."""

    code = "NotFound"


class NotOwner(RegistryError):
    """Caller is not the owner of the record."""

    code = "NotOwner"


class JournalError(RegistryError):
    """Journal is corrupt or inconsistent with the registry rules."""

    code = "JournalError"


class AuthenticationError(RegistryError):
    """A request signature could not be verified."""

    code = "AuthenticationError"


class ConfigError(RegistryError):
    code = "ConfigError"


ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        RegistryError,
        InvalidIdentifier,
        AlreadyExists,
        NotFound,
        NotOwner,
        JournalError,
        AuthenticationError,
        ConfigError,
    )
}


def error_from_dict(data: Dict[str, Any]) -> RegistryError:
    """Rebuild a RegistryError from its wire form."""
    cls = ERRORS_BY_CODE.get(data.get("code"), RegistryError)
    return cls(data.get("error", "unknown error"), data.get("extra"))
