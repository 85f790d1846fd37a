"""
FileMaker Server delivery.

Imports a certificate through `fmsadmin` and restarts the server through
systemd so it picks the certificate up.
"""

import os
import shutil
import subprocess
import time
from typing import List

from .certificate import CertificatePaths
from .config_loader import RunParameters, Settings
from .errors import Outcome, PrerequisiteMissingError
from .helpers import chown_to_account, mask_command
from .logger import get_logger


class FileMakerServer:
    """Administrative access to a local FileMaker Server."""

    def __init__(self, settings: Settings, username: str = None, password: str = None):
        self.settings = settings
        self.username = username
        self.password = password
        self.logger = get_logger()

    def check_prerequisites(self) -> None:
        """
        Check that fmsadmin is available.

        Raises:
            PrerequisiteMissingError: If fmsadmin cannot be found
        """
        if not shutil.which(self.settings.fmsadmin_path):
            raise PrerequisiteMissingError(
                "fmsadmin is not available. Please ensure FileMaker Server is installed"
            )

    def import_certificate(self, cert_file: str, key_file: str) -> Outcome:
        """
        Import a certificate and key with `fmsadmin certificate import`.

        Command output is appended to the import log, which may hold details
        fmsadmin does not print on failure.
        """
        self.logger.info("Importing certificate to FileMaker Server")

        cmd = [
            self.settings.fmsadmin_path, "certificate", "import", cert_file,
            "--keyfile", key_file,
            "-y",
            "-u", self.username or "",
            "-p", self.password or "",
        ]
        self.logger.debug(f"Running: {mask_command(cmd, [self.password])}")

        import_log = self.settings.import_log_file
        try:
            os.makedirs(os.path.dirname(import_log), exist_ok=True)
            with open(import_log, "a") as log:
                result = subprocess.run(cmd, stdout=log, stderr=subprocess.STDOUT)
        except OSError as e:
            return Outcome.failure(f"cannot run fmsadmin: {e}")

        if result.returncode != 0:
            return Outcome.failure(
                f"fmsadmin exited with status {result.returncode}. Check {import_log}"
            )

        self.logger.success("Certificate imported successfully")
        return Outcome.ok()

    def _systemctl(self, action: str) -> Outcome:
        cmd: List[str] = ["systemctl", action, self.settings.service_name]
        self.logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            return Outcome.failure(f"cannot run systemctl: {e}")
        if result.returncode != 0:
            return Outcome.failure(
                f"systemctl {action} {self.settings.service_name} failed: "
                f"{(result.stderr or '').strip() or result.returncode}"
            )
        return Outcome.ok()

    def restart(self) -> Outcome:
        """
        Stop and start the FileMaker Server service.

        Waits restart_grace_seconds between the two so the server can finish
        shutting down.
        """
        self.logger.info("Restarting FileMaker Server...")

        outcome = self._systemctl("stop")
        if not outcome:
            return outcome

        time.sleep(self.settings.restart_grace_seconds)

        outcome = self._systemctl("start")
        if not outcome:
            return outcome

        self.logger.success("FileMaker Server restarted")
        return Outcome.ok()


def deliver(
    paths: CertificatePaths,
    params: RunParameters,
    server: FileMakerServer,
    settings: Settings,
) -> Outcome:
    """
    Deliver a freshly issued certificate to FileMaker Server.

    Steps run in order and each one needs the previous to succeed:
    hand the files to the service account, import them (when requested),
    restart the server (when requested and the import succeeded).

    Args:
        paths: Certificate artifacts on disk
        params: Run parameters with the import and restart switches
        server: FileMaker Server admin client
        settings: Settings naming the service account

    Returns:
        Outcome of the delivery
    """
    logger = get_logger()

    for path in (paths.fullchain, paths.privkey):
        if not os.path.isfile(path) or os.path.getsize(path) == 0:
            return Outcome.failure(f"Certificate file missing or empty: {path}")

    try:
        changed = chown_to_account(
            [paths.fullchain, paths.privkey],
            settings.service_user,
            settings.service_group,
        )
    except OSError as e:
        return Outcome.failure(f"Cannot change ownership of certificate files: {e}")

    if not changed:
        logger.warning(
            f"Service account {settings.service_user}:{settings.service_group} not found; "
            "leaving certificate ownership unchanged"
        )

    if not params.import_certificate:
        logger.info("Certificate import skipped (--import-cert not set)")
        return Outcome.ok()

    outcome = server.import_certificate(paths.fullchain, paths.privkey)
    if not outcome:
        return Outcome.failure(f"Certificate import failed: {outcome.reason}")

    if not params.restart_after_import:
        logger.info("FileMaker Server restart skipped (--restart-fms not set)")
        return Outcome.ok()

    outcome = server.restart()
    if not outcome:
        return Outcome.failure(f"FileMaker Server restart failed: {outcome.reason}")

    return Outcome.ok()
