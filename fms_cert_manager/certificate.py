"""
Certificate inspection.

Reads the certificate certbot keeps under its live directory and reports
whether it exists and how many days it has left.
"""

import math
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from cryptography import x509

from .config_loader import Settings
from .logger import get_logger


@dataclass
class CertificatePaths:
    """Locations of the artifacts certbot produces for a hostname."""
    live_dir: str
    fullchain: str
    privkey: str


@dataclass
class CertificateRecord:
    """
    State of the on-disk certificate, computed fresh on every run.

    A corrupt artifact reports exists=False with corrupt=True.
    """
    exists: bool
    not_after: Optional[datetime] = None
    days_remaining: Optional[int] = None
    corrupt: bool = False
    paths: Optional[CertificatePaths] = None


def certificate_paths(settings: Settings, hostname: str) -> CertificatePaths:
    live_dir = os.path.join(settings.certbot_config_dir, "live", hostname)
    return CertificatePaths(
        live_dir=live_dir,
        fullchain=os.path.join(live_dir, "fullchain.pem"),
        privkey=os.path.join(live_dir, "privkey.pem"),
    )


def get_certificate_expiry(cert_path: str) -> datetime:
    """
    Extract the expiry date from a PEM certificate file.

    Only the first certificate of a full chain (the leaf) is read.

    Args:
        cert_path: Path to the PEM certificate file

    Returns:
        Certificate expiry datetime (timezone-aware UTC)

    Raises:
        ValueError: If the file does not hold a PEM certificate
    """
    with open(cert_path, "rb") as f:
        cert_data = f.read()
    cert = x509.load_pem_x509_certificate(cert_data)
    return cert.not_valid_after_utc


def days_until(not_after: datetime, now: Optional[datetime] = None) -> int:
    """
    Whole days from now until not_after, rounded down.

    Negative once the date has passed.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    if not_after.tzinfo is None:
        not_after = not_after.replace(tzinfo=timezone.utc)
    return math.floor((not_after - now).total_seconds() / 86400)


def inspect_certificate(
    hostname: str,
    settings: Settings,
    now: Optional[datetime] = None,
) -> CertificateRecord:
    """
    Inspect the certificate for a hostname.

    Args:
        hostname: Domain the certificate was issued for
        settings: Settings locating the certbot config dir
        now: Reference time, defaults to the current UTC time

    Returns:
        CertificateRecord for the current run
    """
    logger = get_logger()
    paths = certificate_paths(settings, hostname)

    if not (os.path.isfile(paths.fullchain) and os.path.isfile(paths.privkey)):
        logger.info(f"No certificate found for {hostname} in {paths.live_dir}")
        return CertificateRecord(exists=False, paths=paths)

    try:
        if os.path.getsize(paths.privkey) == 0:
            raise ValueError("private key file is empty")
        not_after = get_certificate_expiry(paths.fullchain)
    except (OSError, ValueError) as e:
        logger.warning(
            f"Certificate for {hostname} exists but cannot be read ({e}); "
            "treating it as missing"
        )
        return CertificateRecord(exists=False, corrupt=True, paths=paths)

    days = days_until(not_after, now)
    logger.debug(f"Certificate expires {not_after.isoformat()} ({days} days)")

    return CertificateRecord(
        exists=True,
        not_after=not_after,
        days_remaining=days,
        paths=paths,
    )
