"""
Certbot wrapper.

Handles running Certbot to request or renew a certificate with a DNS-01
challenge through one of the supported DNS provider plugins.
"""

import os
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from .config_loader import Settings
from .credentials import CredentialScope
from .errors import Outcome, PrerequisiteMissingError
from .logger import get_logger


# Let's Encrypt ACME server URLs
LETSENCRYPT_PRODUCTION_URL = "https://acme-v02.api.letsencrypt.org/directory"
LETSENCRYPT_STAGING_URL = "https://acme-staging-v02.api.letsencrypt.org/directory"

# Plugin name as listed by `certbot plugins`, and its Ubuntu package
CERTBOT_PLUGINS: Dict[str, str] = {
    "digitalocean": "dns-digitalocean",
    "linode": "dns-linode",
    "route53": "dns-route53",
}


def acme_server(staging: bool) -> str:
    return LETSENCRYPT_STAGING_URL if staging else LETSENCRYPT_PRODUCTION_URL


class CertbotClient:
    """
    Runs certbot for one host.

    Every command carries --no-autorenew: this tool owns the renewal
    schedule, and certbot's own timer must never act on the same lineage.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.logger = get_logger()
        self._certbot_path: Optional[str] = None

    @property
    def certbot_path(self) -> Optional[str]:
        if self._certbot_path is None:
            self._certbot_path = shutil.which("certbot")
        return self._certbot_path

    def _directory_args(self) -> List[str]:
        return [
            "--config-dir", self.settings.certbot_config_dir,
            "--work-dir", self.settings.certbot_work_dir,
            "--logs-dir", self.settings.certbot_logs_dir,
        ]

    def check_prerequisites(self, dns_provider: str) -> None:
        """
        Check that certbot and the DNS plugin for a provider are installed.

        Raises:
            PrerequisiteMissingError: If either is missing
        """
        self.logger.info("Checking certbot and DNS plugin...")

        if not self.certbot_path:
            raise PrerequisiteMissingError(
                "Certbot is not installed. Please run: sudo apt install certbot"
            )

        plugin = CERTBOT_PLUGINS.get(dns_provider)
        if plugin is None:
            raise PrerequisiteMissingError(f"Unknown DNS provider: {dns_provider}")

        try:
            result = subprocess.run(
                [self.certbot_path, "plugins", *self._directory_args()],
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise PrerequisiteMissingError(f"Cannot run certbot: {e}")

        if result.returncode != 0 or plugin not in result.stdout:
            raise PrerequisiteMissingError(
                f"Certbot {plugin} plugin is not installed. "
                f"Please run: sudo apt install python3-certbot-{plugin}"
            )

        self.logger.debug(f"Found certbot at {self.certbot_path} with {plugin} plugin")

    def request(
        self,
        hostname: str,
        email: str,
        staging: bool,
        scope: CredentialScope,
        replace_existing: bool = False,
    ) -> Outcome:
        """
        Request a new certificate with `certbot certonly`.

        Args:
            hostname: Domain for the certificate
            email: Contact email for Let's Encrypt registration
            staging: Use the staging environment
            scope: Live DNS credentials
            replace_existing: Replace a lineage already on disk, including
                one from the other environment

        Returns:
            Outcome of the certbot run
        """
        self.logger.info(f"Requesting new certificate for {hostname}")

        if staging:
            self.logger.info(
                "Using Let's Encrypt STAGING environment (add --live to use production)"
            )
        else:
            self.logger.info("Using Let's Encrypt production environment")

        cmd = [
            "certonly",
            *scope.certbot_args,
            "--non-interactive",
            "--agree-tos",
            "--no-autorenew",
            "--email", email,
            "-d", hostname,
            "--cert-name", hostname,
            "--server", acme_server(staging),
        ]
        if replace_existing:
            # Replaces a still-valid lineage, or one from the other environment
            cmd.extend(["--force-renewal", "--break-my-certs"])

        outcome = self._run(cmd, scope)
        if outcome:
            self.logger.success("Certificate requested successfully")
        else:
            self.logger.error(f"Certificate request failed: {outcome.reason}")
        return outcome

    def renew(
        self,
        hostname: str,
        staging: bool,
        force: bool,
        scope: CredentialScope,
    ) -> Outcome:
        """
        Renew an existing certificate with `certbot renew`.

        Args:
            hostname: Certificate lineage name
            staging: Use the staging environment
            force: Renew even if certbot considers the certificate current
            scope: Live DNS credentials

        Returns:
            Outcome of the certbot run
        """
        self.logger.info(f"Renewing certificate for {hostname}")

        cmd = [
            "renew",
            *scope.certbot_args,
            "--non-interactive",
            "--no-autorenew",
            "--cert-name", hostname,
            "--server", acme_server(staging),
        ]
        if force:
            cmd.append("--force-renewal")
            self.logger.info("Force renewal requested")

        outcome = self._run(cmd, scope)
        if outcome:
            self.logger.success("Certificate renewed successfully")
        else:
            self.logger.error(f"Certificate renewal failed: {outcome.reason}")
        return outcome

    def _run(self, args: List[str], scope: CredentialScope) -> Outcome:
        if not self.certbot_path:
            return Outcome.failure("certbot not found on PATH")

        try:
            for dir_path in (
                self.settings.certbot_config_dir,
                self.settings.certbot_work_dir,
                self.settings.certbot_logs_dir,
            ):
                Path(dir_path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return Outcome.failure(f"cannot create certbot directories: {e}")

        cmd = [self.certbot_path, *args, *self._directory_args()]

        env_vars = os.environ.copy()
        env_vars.update(scope.env)

        self.logger.debug(f"Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                env=env_vars,
                capture_output=True,
                text=True,
                timeout=self.settings.certbot_timeout_seconds,
            )
        except subprocess.TimeoutExpired:
            return Outcome.failure(
                f"certbot timed out after {self.settings.certbot_timeout_seconds}s"
            )
        except OSError as e:
            return Outcome.failure(f"cannot run certbot: {e}")

        if result.stdout:
            self.logger.debug(f"Certbot stdout: {result.stdout.strip()}")

        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            self.logger.error(f"Certbot stderr: {stderr}")
            return Outcome.failure(
                f"certbot exited with status {result.returncode}: {stderr or 'no output'}"
            )

        return Outcome.ok()
