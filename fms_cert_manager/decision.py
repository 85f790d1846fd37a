"""
Renewal decision rules.

Classifies a run as skip, request or renew from the run parameters, the
state left by the previous run, and the certificate on disk. Pure: no I/O.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .certificate import CertificateRecord
from .config_loader import DEFAULT_RENEWAL_THRESHOLD_DAYS, RunParameters
from .state import StateRecord


class Action(Enum):
    """What a run should do."""
    SKIP = "skip"
    REQUEST = "request"
    RENEW = "renew"


@dataclass(frozen=True)
class Decision:
    action: Action
    reason: str


def decide(
    params: RunParameters,
    prior_state: Optional[StateRecord],
    cert_info: CertificateRecord,
    threshold_days: int = DEFAULT_RENEWAL_THRESHOLD_DAYS,
) -> Decision:
    """
    Decide the action for this run. The first matching rule wins.

    1. Hostname differs from the prior state: request.
    2. Staging/production differs from the prior state: request. A renewal
       never moves a certificate between environments.
    3. Forced: renew an existing certificate, otherwise request.
    4. No usable certificate on disk: request.
    5. Fewer than threshold_days left: renew. Exactly threshold_days skips.
    6. Otherwise: skip.

    Args:
        params: Parameters of this run
        prior_state: Record from the last successful run, if any
        cert_info: Inspection of the certificate on disk
        threshold_days: Renewal window in days

    Returns:
        Decision with the action and a human-readable reason
    """
    if prior_state is not None:
        if prior_state.hostname != params.hostname:
            return Decision(
                Action.REQUEST,
                f"Different hostname detected. Previous: {prior_state.hostname}, "
                f"Current: {params.hostname}",
            )

        if prior_state.is_staging_environment != params.is_staging_environment:
            previous = "staging" if prior_state.is_staging_environment else "production"
            return Decision(
                Action.REQUEST,
                f"Environment changed. Previous: {previous}, Current: {params.environment_name}",
            )

    if params.force_renew:
        if cert_info.exists:
            return Decision(Action.RENEW, "Force renewal requested")
        return Decision(Action.REQUEST, "Force renewal requested but no certificate found")

    if not cert_info.exists:
        if cert_info.corrupt:
            return Decision(Action.REQUEST, "Existing certificate is unreadable")
        return Decision(Action.REQUEST, "No certificate found")

    if cert_info.days_remaining is not None and cert_info.days_remaining < threshold_days:
        return Decision(
            Action.RENEW,
            f"Certificate expires in {cert_info.days_remaining} days "
            f"(renewal window is {threshold_days} days)",
        )

    return Decision(
        Action.SKIP,
        f"Certificate exists and is valid ({cert_info.days_remaining} days remaining)",
    )
