"""Tests for the certbot wrapper."""

import subprocess
from unittest.mock import patch

import pytest

from fms_cert_manager.certbot import (
    CertbotClient,
    LETSENCRYPT_PRODUCTION_URL,
    LETSENCRYPT_STAGING_URL,
)
from fms_cert_manager.credentials import CredentialScope
from fms_cert_manager.errors import PrerequisiteMissingError


@pytest.fixture
def scope(tmp_path):
    path = str(tmp_path / "digitalocean.ini")
    return CredentialScope(
        provider="digitalocean",
        path=path,
        certbot_args=["--authenticator", "dns-digitalocean", "--dns-digitalocean-credentials", path],
    )


@pytest.fixture
def client(settings):
    client = CertbotClient(settings)
    client._certbot_path = "/usr/bin/certbot"
    return client


def _completed(returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def test_request_command(client, scope, settings):
    with patch("fms_cert_manager.certbot.subprocess.run", return_value=_completed()) as run:
        outcome = client.request("example.com", "admin@example.com", True, scope)

    assert outcome.success
    cmd = run.call_args.args[0]
    assert cmd[:2] == ["/usr/bin/certbot", "certonly"]
    assert "--no-autorenew" in cmd
    assert "--non-interactive" in cmd
    assert "--agree-tos" in cmd
    assert cmd[cmd.index("--email") + 1] == "admin@example.com"
    assert cmd[cmd.index("-d") + 1] == "example.com"
    assert cmd[cmd.index("--server") + 1] == LETSENCRYPT_STAGING_URL
    assert cmd[cmd.index("--dns-digitalocean-credentials") + 1] == scope.path
    assert cmd[cmd.index("--config-dir") + 1] == settings.certbot_config_dir
    assert "--force-renewal" not in cmd


def test_request_replacing_existing_lineage(client, scope):
    with patch("fms_cert_manager.certbot.subprocess.run", return_value=_completed()) as run:
        client.request("example.com", "admin@example.com", False, scope, replace_existing=True)

    cmd = run.call_args.args[0]
    assert cmd[cmd.index("--server") + 1] == LETSENCRYPT_PRODUCTION_URL
    assert "--force-renewal" in cmd
    assert "--break-my-certs" in cmd


@pytest.mark.parametrize("force", [True, False])
def test_renew_command(client, scope, force):
    with patch("fms_cert_manager.certbot.subprocess.run", return_value=_completed()) as run:
        outcome = client.renew("example.com", False, force, scope)

    assert outcome.success
    cmd = run.call_args.args[0]
    assert cmd[1] == "renew"
    assert "--no-autorenew" in cmd
    assert cmd[cmd.index("--cert-name") + 1] == "example.com"
    assert cmd[cmd.index("--server") + 1] == LETSENCRYPT_PRODUCTION_URL
    assert ("--force-renewal" in cmd) is force


def test_extra_environment_is_passed(client, tmp_path):
    path = str(tmp_path / "aws")
    route53 = CredentialScope(
        provider="route53",
        path=path,
        certbot_args=["--dns-route53"],
        env={"AWS_SHARED_CREDENTIALS_FILE": path},
    )
    with patch("fms_cert_manager.certbot.subprocess.run", return_value=_completed()) as run:
        client.request("example.com", "admin@example.com", True, route53)

    assert run.call_args.kwargs["env"]["AWS_SHARED_CREDENTIALS_FILE"] == path


def test_non_zero_exit_is_failure(client, scope):
    result = _completed(returncode=1, stderr="DNS problem: NXDOMAIN")
    with patch("fms_cert_manager.certbot.subprocess.run", return_value=result):
        outcome = client.request("example.com", "admin@example.com", True, scope)

    assert not outcome.success
    assert "NXDOMAIN" in outcome.reason


def test_timeout_is_failure(client, scope):
    error = subprocess.TimeoutExpired(cmd="certbot", timeout=5)
    with patch("fms_cert_manager.certbot.subprocess.run", side_effect=error):
        outcome = client.renew("example.com", True, False, scope)
    assert not outcome.success
    assert "timed out" in outcome.reason


def test_missing_certbot_binary(settings, scope):
    client = CertbotClient(settings)
    with patch("fms_cert_manager.certbot.shutil.which", return_value=None):
        with pytest.raises(PrerequisiteMissingError):
            client.check_prerequisites("digitalocean")
        assert not client.request("example.com", "admin@example.com", True, scope).success


def test_missing_plugin(client):
    listing = _completed(stdout="* dns-route53\n* standalone\n")
    with patch("fms_cert_manager.certbot.subprocess.run", return_value=listing):
        with pytest.raises(PrerequisiteMissingError, match="dns-digitalocean"):
            client.check_prerequisites("digitalocean")


def test_plugin_present(client):
    listing = _completed(stdout="* dns-digitalocean\nDescription: ...\n")
    with patch("fms_cert_manager.certbot.subprocess.run", return_value=listing):
        client.check_prerequisites("digitalocean")
