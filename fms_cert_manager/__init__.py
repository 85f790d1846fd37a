"""
Let's Encrypt certificate manager for FileMaker Server.

This package contains:
- logger: Centralized logging setup
- config_loader: Settings and run parameter loading and validation
- credentials: Short-lived DNS provider credentials files
- certificate: Inspection of the certificate on disk
- state: Per-hostname state persisted between runs
- decision: Rules choosing skip, request or renew
- certbot: Certbot request and renewal wrapper
- filemaker: Certificate import and FileMaker Server restart
- lock: Single-flight lock per hostname
- controller: Run sequencing
- cli: Command-line front-end
"""

__version__ = "1.1.0"

from .logger import setup_logger, get_logger
from .errors import (
    CertManagerError,
    ParameterValidationError,
    ConfigurationError,
    PrerequisiteMissingError,
    CredentialSetupError,
    IssuanceError,
    DeliveryError,
    StatePersistenceError,
    RunInProgressError,
    LockError,
    Outcome,
)
from .config_loader import Settings, RunParameters, load_settings, validate_parameters
from .credentials import CredentialScope, credential_scope
from .certificate import CertificateRecord, inspect_certificate
from .state import StateRecord, StateStore
from .decision import Action, Decision, decide
from .certbot import CertbotClient
from .filemaker import FileMakerServer, deliver
from .lock import hostname_lock
from .controller import RunController, RunResult, RunState

__all__ = [
    "__version__",
    # Logger
    "setup_logger",
    "get_logger",
    # Errors
    "CertManagerError",
    "ParameterValidationError",
    "ConfigurationError",
    "PrerequisiteMissingError",
    "CredentialSetupError",
    "IssuanceError",
    "DeliveryError",
    "StatePersistenceError",
    "RunInProgressError",
    "LockError",
    "Outcome",
    # Config
    "Settings",
    "RunParameters",
    "load_settings",
    "validate_parameters",
    # Credentials
    "CredentialScope",
    "credential_scope",
    # Certificate
    "CertificateRecord",
    "inspect_certificate",
    # State
    "StateRecord",
    "StateStore",
    # Decision
    "Action",
    "Decision",
    "decide",
    # Certbot
    "CertbotClient",
    # FileMaker
    "FileMakerServer",
    "deliver",
    # Lock
    "hostname_lock",
    # Controller
    "RunController",
    "RunResult",
    "RunState",
]
