"""Shared fixtures for the certificate manager tests."""

import os
from datetime import datetime, timedelta, timezone

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from fms_cert_manager.certificate import certificate_paths
from fms_cert_manager.config_loader import RunParameters, Settings
from fms_cert_manager.errors import Outcome
from fms_cert_manager.logger import setup_logger


MISSING_ACCOUNT = "fms-cert-manager-test-missing"


@pytest.fixture(autouse=True)
def logger():
    """Plain debug logger that also propagates, so caplog sees records."""
    test_logger = setup_logger(verbose=True, use_colors=False)
    test_logger.propagate = True
    return test_logger


@pytest.fixture
def settings(tmp_path):
    """Settings rooted in a temporary directory, no root or service account needed."""
    return Settings(
        certbot_config_dir=str(tmp_path / "certbot"),
        credentials_dir=str(tmp_path / "credentials"),
        service_user=MISSING_ACCOUNT,
        service_group=MISSING_ACCOUNT,
        restart_grace_seconds=0,
        require_root=False,
    )


@pytest.fixture
def make_params():
    """Factory for RunParameters with sensible defaults."""
    def _make(**overrides):
        values = dict(
            hostname="example.com",
            email="admin@example.com",
            dns_provider="digitalocean",
            dns_credentials={"token": "dop_v1_secret"},
        )
        values.update(overrides)
        return RunParameters(**values)
    return _make


@pytest.fixture
def write_certificate(settings):
    """
    Factory writing a self-signed fullchain/privkey pair into the live dir.

    The certificate expires days_valid days plus twelve hours from now, so
    inspection reports exactly days_valid days remaining.
    """
    def _write(hostname="example.com", days_valid=90):
        key = ec.generate_private_key(ec.SECP256R1())
        now = datetime.now(timezone.utc)
        not_after = now + timedelta(days=days_valid, hours=12)
        subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, hostname)])
        cert = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(not_after - timedelta(days=90))
            .not_valid_after(not_after)
            .sign(key, hashes.SHA256())
        )

        paths = certificate_paths(settings, hostname)
        os.makedirs(paths.live_dir, exist_ok=True)
        with open(paths.fullchain, "wb") as f:
            f.write(cert.public_bytes(serialization.Encoding.PEM))
        with open(paths.privkey, "wb") as f:
            f.write(key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                serialization.NoEncryption(),
            ))
        return paths
    return _write


class FakeIssuer:
    """Stands in for CertbotClient; writes a certificate when it succeeds."""

    def __init__(self, write_certificate, succeed=True, days_valid=89):
        self.write_certificate = write_certificate
        self.succeed = succeed
        self.days_valid = days_valid
        self.calls = []
        self.credential_files_seen = []

    def _issue(self, hostname, scope):
        self.credential_files_seen.append(os.path.exists(scope.path))
        if not self.succeed:
            return Outcome.failure("certbot exited with status 1: DNS problem")
        self.write_certificate(hostname, self.days_valid)
        return Outcome.ok()

    def request(self, hostname, email, staging, scope, replace_existing=False):
        self.calls.append(("request", hostname, staging, replace_existing))
        return self._issue(hostname, scope)

    def renew(self, hostname, staging, force, scope):
        self.calls.append(("renew", hostname, staging, force))
        return self._issue(hostname, scope)


class FakeServer:
    """Stands in for FileMakerServer."""

    def __init__(self, import_ok=True, restart_ok=True):
        self.import_ok = import_ok
        self.restart_ok = restart_ok
        self.imports = []
        self.restarts = 0

    def import_certificate(self, cert_file, key_file):
        self.imports.append((cert_file, key_file))
        if self.import_ok:
            return Outcome.ok()
        return Outcome.failure("fmsadmin exited with status 1")

    def restart(self):
        self.restarts += 1
        if self.restart_ok:
            return Outcome.ok()
        return Outcome.failure("systemctl stop fmshelper failed")


@pytest.fixture
def fake_issuer(write_certificate):
    return FakeIssuer(write_certificate)


@pytest.fixture
def fake_server():
    return FakeServer()
