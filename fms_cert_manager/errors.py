"""
Error taxonomy for the certificate manager.

Each error carries the lifecycle stage it was raised in so the command
line front-end can report where a run stopped.
"""

from dataclasses import dataclass
from typing import List, Optional


class CertManagerError(Exception):
    """Base class for all certificate manager failures."""

    stage = "run"

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class ParameterValidationError(CertManagerError):
    """Raised when invocation parameters are missing or malformed."""

    stage = "validation"

    def __init__(self, message: str, problems: Optional[List[str]] = None):
        super().__init__(message)
        self.problems = problems or []


class ConfigurationError(ParameterValidationError):
    """Raised when the settings file is invalid or missing."""

    stage = "configuration"


class PrerequisiteMissingError(CertManagerError):
    """Raised when a required external tool or plugin is absent."""

    stage = "prerequisites"


class RunInProgressError(CertManagerError):
    """Raised when another run already holds the lock for a hostname."""

    stage = "lock"


class LockError(CertManagerError):
    """Raised when the lock file for a hostname cannot be created."""

    stage = "lock"


class CredentialSetupError(CertManagerError):
    """Raised when the DNS provider credentials file cannot be prepared."""

    stage = "credentials"


class IssuanceError(CertManagerError):
    """Raised when certbot fails to request or renew a certificate."""

    stage = "issuance"


class DeliveryError(CertManagerError):
    """Raised when importing the certificate or restarting the server fails."""

    stage = "delivery"


class StatePersistenceError(CertManagerError):
    """Raised when the state record cannot be written."""

    stage = "state"


@dataclass(frozen=True)
class Outcome:
    """Result of a call to an external tool."""
    success: bool
    reason: Optional[str] = None

    @classmethod
    def ok(cls) -> "Outcome":
        return cls(success=True)

    @classmethod
    def failure(cls, reason: str) -> "Outcome":
        return cls(success=False, reason=reason)

    def __bool__(self) -> bool:
        return self.success
