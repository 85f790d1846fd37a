"""
Run controller.

Sequences one invocation: lock, credentials, state, inspection, decision,
issuance, delivery, state write. Failures end the run without recording a
certificate that was never confirmed.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .certbot import CertbotClient
from .certificate import CertificateRecord, certificate_paths, inspect_certificate
from .config_loader import RunParameters, Settings
from .credentials import CredentialScope, credential_scope
from .decision import Action, decide
from .errors import (
    CertManagerError,
    DeliveryError,
    IssuanceError,
    RunInProgressError,
)
from .filemaker import FileMakerServer, deliver
from .helpers import format_expiration_status
from .lock import hostname_lock
from .logger import get_logger
from .state import StateRecord, StateStore


class RunState(Enum):
    """Lifecycle of a single run."""
    IDLE = "idle"
    CREDENTIALS_ACQUIRED = "credentials_acquired"
    STATE_READ = "state_read"
    DECIDED = "decided"
    SKIPPED = "skipped"
    ISSUING = "issuing"
    DELIVERING = "delivering"
    STATE_WRITTEN = "state_written"
    CREDENTIALS_RELEASED = "credentials_released"
    SUCCESS = "success"
    FAILURE = "failure"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RunResult:
    """Result of one run, reported on the console and as JSON."""
    hostname: str
    environment: str
    started_at: str = field(default_factory=lambda: _utc_now().isoformat())
    completed_at: Optional[str] = None
    action: Optional[Action] = None
    reason: Optional[str] = None
    days_remaining: Optional[int] = None
    success: bool = True
    exit_code: int = 0
    stage: Optional[str] = None
    message: str = ""
    transitions: List[RunState] = field(default_factory=list)

    def fail(self, error: CertManagerError) -> None:
        self.success = False
        self.exit_code = 1
        self.stage = error.stage
        self.message = str(error)

    def finalize(self) -> None:
        """Mark the run as complete."""
        self.completed_at = _utc_now().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "hostname": self.hostname,
            "letsencrypt_environment": self.environment,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "action": self.action.value if self.action else None,
            "reason": self.reason,
            "days_remaining": self.days_remaining,
            "success": self.success,
            "exit_code": self.exit_code,
            "stage": self.stage,
            "message": self.message,
            "transitions": [t.value for t in self.transitions],
        }

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)


class RunController:
    """
    Drives one certificate run end to end.

    The hostname lock and the credentials file are both context managers, so
    they are released on every path out of run(), interrupts included. Only
    the controller writes state records.
    """

    def __init__(
        self,
        settings: Settings,
        state_store: StateStore,
        issuer: CertbotClient,
        server: FileMakerServer,
        inspector: Callable[[str, Settings], CertificateRecord] = inspect_certificate,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.settings = settings
        self.state_store = state_store
        self.issuer = issuer
        self.server = server
        self.inspector = inspector
        self.clock = clock
        self.logger = get_logger()
        self.state = RunState.IDLE
        self._result: Optional[RunResult] = None

    def _transition(self, state: RunState) -> None:
        self.logger.debug(f"Run state: {self.state.value} -> {state.value}")
        self.state = state
        if self._result is not None:
            self._result.transitions.append(state)

    def run(self, params: RunParameters) -> RunResult:
        """
        Execute one run for params.hostname.

        A run already in progress for the same hostname is not an error:
        this run leaves everything untouched and reports success.

        Returns:
            RunResult with exit_code 0 on success or skip, 1 on failure
        """
        result = RunResult(hostname=params.hostname, environment=params.environment_name)
        self._result = result
        self.state = RunState.IDLE
        result.transitions.append(RunState.IDLE)

        try:
            with hostname_lock(self.settings.lock_dir, params.hostname):
                try:
                    with credential_scope(
                        params.dns_provider,
                        params.dns_credentials,
                        self.settings.credentials_dir,
                    ) as scope:
                        self._transition(RunState.CREDENTIALS_ACQUIRED)
                        self._execute(params, scope, result)
                finally:
                    if self.state != RunState.IDLE:
                        self._transition(RunState.CREDENTIALS_RELEASED)

        except RunInProgressError as e:
            self.logger.warning(f"{e}; nothing to do")
            result.message = str(e)

        except CertManagerError as e:
            self.logger.failure(f"{params.hostname}: {e.stage} failed: {e}")
            result.fail(e)
            self._transition(RunState.FAILURE)

        else:
            self._transition(RunState.SUCCESS)

        result.finalize()
        return result

    def _execute(
        self,
        params: RunParameters,
        scope: CredentialScope,
        result: RunResult,
    ) -> None:
        hostname = params.hostname
        staging = params.is_staging_environment

        prior_state = self.state_store.read(hostname)
        self._transition(RunState.STATE_READ)
        if prior_state is not None:
            self.logger.debug(
                f"Previous state - Hostname: {prior_state.hostname}, "
                f"Staging: {prior_state.is_staging_environment}, "
                f"Cert exists: {prior_state.certificate_confirmed_present}"
            )

        cert_info = self.inspector(hostname, self.settings)
        if cert_info.exists:
            self.logger.info(
                f"Certificate status: "
                f"{format_expiration_status(cert_info.days_remaining, self.settings.renewal_threshold_days)}"
            )

        decision = decide(
            params, prior_state, cert_info, self.settings.renewal_threshold_days
        )
        self._transition(RunState.DECIDED)
        result.action = decision.action
        result.reason = decision.reason
        result.days_remaining = cert_info.days_remaining
        self.logger.info(f"{decision.reason} - action: {decision.action.value}")

        if decision.action == Action.SKIP:
            self._transition(RunState.SKIPPED)
            self._write_state(params)
            result.message = "Certificate is valid; nothing to do"
            return

        self._transition(RunState.ISSUING)
        self.logger.step(hostname, f"certificate {decision.action.value}")
        if decision.action == Action.REQUEST:
            outcome = self.issuer.request(
                hostname,
                params.email,
                staging,
                scope,
                replace_existing=cert_info.exists or cert_info.corrupt,
            )
        else:
            outcome = self.issuer.renew(hostname, staging, params.force_renew, scope)

        if not outcome:
            raise IssuanceError(f"Certificate {decision.action.value} failed: {outcome.reason}")

        self._transition(RunState.DELIVERING)
        self.logger.step(hostname, "delivery")
        paths = cert_info.paths or certificate_paths(self.settings, hostname)
        outcome = deliver(paths, params, self.server, self.settings)
        if not outcome:
            raise DeliveryError(outcome.reason)

        self._write_state(params)
        result.message = f"Certificate {decision.action.value} completed successfully"
        self.logger.success(result.message)

    def _write_state(self, params: RunParameters) -> None:
        record = StateRecord(
            hostname=params.hostname,
            email=params.email,
            is_staging_environment=params.is_staging_environment,
            last_run_timestamp=self.clock(),
            certificate_confirmed_present=True,
        )
        self.state_store.write(record)
        self._transition(RunState.STATE_WRITTEN)
