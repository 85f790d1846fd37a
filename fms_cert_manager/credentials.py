"""
DNS provider credentials for certbot.

Certbot's DNS plugins read their API credentials from a file. The file is
created with owner-only permissions just before issuance and removed on
every exit path, including interrupts.
"""

import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterator, List

from .errors import CredentialSetupError
from .logger import get_logger


@dataclass
class CredentialScope:
    """A live credentials file and the certbot options that point at it."""
    provider: str
    path: str
    certbot_args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)


def _render_credentials(provider: str, credentials: Dict[str, str]) -> str:
    """
    Build the credentials file content for a DNS provider.

    Args:
        provider: DNS provider name
        credentials: Provider credential fields

    Returns:
        File content in the format the provider's plugin expects
    """
    if provider == "digitalocean":
        return f"dns_digitalocean_token = {credentials['token']}\n"

    if provider == "linode":
        return (
            f"dns_linode_key = {credentials['token']}\n"
            "dns_linode_version = 4\n"
        )

    if provider == "route53":
        # AWS shared credentials format, read by boto3 inside certbot-dns-route53
        return (
            "[default]\n"
            f"aws_access_key_id = {credentials['access_key_id']}\n"
            f"aws_secret_access_key = {credentials['secret_access_key']}\n"
        )

    raise CredentialSetupError(f"Unknown DNS provider: {provider}")


def _certbot_options(provider: str, path: str) -> tuple:
    """Return (certbot arguments, extra environment) for a credentials file."""
    if provider == "route53":
        return ["--dns-route53"], {"AWS_SHARED_CREDENTIALS_FILE": path}
    return [
        "--authenticator", f"dns-{provider}",
        f"--dns-{provider}-credentials", path,
    ], {}


@contextmanager
def credential_scope(
    provider: str,
    credentials: Dict[str, str],
    credentials_dir: str,
) -> Iterator[CredentialScope]:
    """
    Create a short-lived credentials file for a DNS plugin.

    The file is removed when the block exits, whether normally, through an
    exception, or through KeyboardInterrupt.

    Args:
        provider: DNS provider name ("digitalocean", "linode" or "route53")
        credentials: Provider credential fields
        credentials_dir: Directory the file is created in

    Yields:
        CredentialScope describing the file and the certbot options for it

    Raises:
        CredentialSetupError: If the file cannot be created
    """
    logger = get_logger()
    logger.info(f"Setting up {provider} credentials...")

    try:
        content = _render_credentials(provider, credentials)
    except KeyError as e:
        raise CredentialSetupError(f"Missing {provider} credential field: {e}")

    try:
        os.makedirs(credentials_dir, mode=0o700, exist_ok=True)
        fd, creds_path = tempfile.mkstemp(
            dir=credentials_dir, prefix=f"{provider}_", suffix=".ini"
        )
    except OSError as e:
        raise CredentialSetupError(f"Cannot create credentials file in {credentials_dir}: {e}")

    try:
        try:
            os.fchmod(fd, 0o600)
            os.write(fd, content.encode())
        except OSError as e:
            raise CredentialSetupError(f"Cannot write credentials file {creds_path}: {e}")
        finally:
            os.close(fd)

        certbot_args, env = _certbot_options(provider, creds_path)
        logger.debug(f"Created {provider} credentials file: {creds_path}")
        logger.success(f"{provider} credentials configured")

        yield CredentialScope(
            provider=provider,
            path=creds_path,
            certbot_args=certbot_args,
            env=env,
        )

    finally:
        if os.path.exists(creds_path):
            os.unlink(creds_path)
            logger.info(f"{provider} credentials cleaned up")
