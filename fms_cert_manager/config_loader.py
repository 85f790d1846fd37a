"""
Configuration loading, validation, and parsing.

Settings (paths, service account, timing knobs) come from an optional YAML
file. Run parameters come from the command line and are validated before
any external tool is touched.
"""

import os
import re
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

import yaml

from .errors import ConfigurationError, ParameterValidationError
from .logger import get_logger


FMS_CERTBOT_PATH = "/opt/FileMaker/FileMaker Server/CStore/Certbot"
DEFAULT_CREDENTIALS_DIR = "/etc/certbot"
DEFAULT_RENEWAL_THRESHOLD_DAYS = 30

# Credential fields each DNS provider needs, in prompt order
DNS_PROVIDERS: Dict[str, List[str]] = {
    "digitalocean": ["token"],
    "linode": ["token"],
    "route53": ["access_key_id", "secret_access_key"],
}

HOSTNAME_PATTERN = re.compile(
    r"^(?=.{1,253}$)(?:[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?\.)+[A-Za-z]{2,63}$"
)
EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


@dataclass
class Settings:
    """Host-level settings shared by every run."""
    certbot_config_dir: str = FMS_CERTBOT_PATH
    certbot_work_dir: str = ""
    certbot_logs_dir: str = ""
    state_dir: str = ""
    lock_dir: str = ""
    credentials_dir: str = DEFAULT_CREDENTIALS_DIR
    renewal_threshold_days: int = DEFAULT_RENEWAL_THRESHOLD_DAYS
    service_user: str = "fmserver"
    service_group: str = "fmsadmin"
    fmsadmin_path: str = "fmsadmin"
    service_name: str = "fmshelper"
    restart_grace_seconds: float = 10
    certbot_timeout_seconds: Optional[int] = None
    require_root: bool = True

    def __post_init__(self):
        # Unset directories follow the certbot config dir, as the FileMaker layout does
        if not self.certbot_work_dir:
            self.certbot_work_dir = self.certbot_config_dir
        if not self.certbot_logs_dir:
            self.certbot_logs_dir = os.path.join(self.certbot_config_dir, "logs")
        if not self.state_dir:
            self.state_dir = self.certbot_config_dir
        if not self.lock_dir:
            self.lock_dir = self.state_dir

    @property
    def log_file(self) -> str:
        return os.path.join(self.certbot_logs_dir, "cert-manager.log")

    @property
    def import_log_file(self) -> str:
        return os.path.join(self.certbot_logs_dir, "fms-import.log")


@dataclass
class RunParameters:
    """Parameters of a single invocation. Never persisted."""
    hostname: str
    email: str
    dns_provider: str
    dns_credentials: Dict[str, str] = field(default_factory=dict, repr=False)
    use_production_environment: bool = False
    force_renew: bool = False
    import_certificate: bool = False
    restart_after_import: bool = False
    debug: bool = False
    fms_username: Optional[str] = None
    fms_password: Optional[str] = field(default=None, repr=False)

    @property
    def is_staging_environment(self) -> bool:
        return not self.use_production_environment

    @property
    def environment_name(self) -> str:
        return "staging" if self.is_staging_environment else "production"


def _expand_env_vars(value: Any) -> Any:
    """
    Expand environment variables in string values.

    Supports ${VAR_NAME} syntax.

    Args:
        value: Value to expand (string, dict, or list)

    Returns:
        Value with environment variables expanded
    """
    if isinstance(value, str):
        pattern = r"\$\{([^}]+)\}"

        def replace(match):
            var_name = match.group(1)
            return os.environ.get(var_name, match.group(0))

        return re.sub(pattern, replace, value)

    elif isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [_expand_env_vars(item) for item in value]

    return value


def _parse_settings(data: Dict[str, Any]) -> Settings:
    """
    Parse settings configuration.

    Args:
        data: Raw settings data from YAML

    Returns:
        Settings instance
    """
    known = set(Settings.__dataclass_fields__)
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown settings: {', '.join(unknown)}")

    try:
        settings = Settings(**data)
    except TypeError as e:
        raise ConfigurationError(f"Invalid settings: {e}")

    if not isinstance(settings.renewal_threshold_days, int) or isinstance(
        settings.renewal_threshold_days, bool
    ):
        raise ConfigurationError("renewal_threshold_days must be an integer")
    if settings.renewal_threshold_days < 1:
        raise ConfigurationError("renewal_threshold_days must be at least 1")
    if settings.renewal_threshold_days >= 90:
        # Let's Encrypt certificates live 90 days; a larger window renews every run
        raise ConfigurationError("renewal_threshold_days must be less than 90")

    if not isinstance(settings.restart_grace_seconds, (int, float)) or settings.restart_grace_seconds < 0:
        raise ConfigurationError("restart_grace_seconds must be a non-negative number")

    if settings.certbot_timeout_seconds is not None and (
        not isinstance(settings.certbot_timeout_seconds, int) or settings.certbot_timeout_seconds <= 0
    ):
        raise ConfigurationError("certbot_timeout_seconds must be a positive integer")

    return settings


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Load and validate settings from a YAML file.

    Without a path the built-in FileMaker Server defaults are used.

    Args:
        config_path: Path to the configuration file

    Returns:
        Validated Settings instance

    Raises:
        ConfigurationError: If configuration is invalid
    """
    if config_path is None:
        return Settings()

    path = Path(config_path)

    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    if path.suffix not in (".yaml", ".yml"):
        raise ConfigurationError(
            f"Configuration file must be YAML (.yaml or .yml): {config_path}"
        )

    try:
        with open(path, "r") as f:
            raw_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
    except IOError as e:
        raise ConfigurationError(f"Failed to read configuration file: {e}")

    if raw_data is None:
        return Settings()
    if not isinstance(raw_data, dict):
        raise ConfigurationError("Configuration file must contain a mapping")

    data = _expand_env_vars(raw_data)
    # Accept both a bare mapping and one nested under "settings"
    settings_data = data.get("settings", data)
    if not isinstance(settings_data, dict):
        raise ConfigurationError("'settings' must be a mapping")

    return _parse_settings(settings_data)


def validate_parameters(params: RunParameters) -> None:
    """
    Validate run parameters before any external call is made.

    All problems are collected and reported together.

    Raises:
        ParameterValidationError: If any required field is missing or malformed
    """
    logger = get_logger()
    problems = []

    if not params.hostname:
        problems.append("--hostname is required")
    elif not HOSTNAME_PATTERN.match(params.hostname):
        problems.append(f"--hostname '{params.hostname}' is not a valid fully qualified domain name")

    if not params.email:
        problems.append("--email is required")
    elif not EMAIL_PATTERN.match(params.email):
        problems.append(f"--email '{params.email}' is not a valid email address")

    if params.dns_provider not in DNS_PROVIDERS:
        problems.append(
            f"--dns-provider must be one of: {', '.join(sorted(DNS_PROVIDERS))}"
        )
    else:
        for key in DNS_PROVIDERS[params.dns_provider]:
            if not (params.dns_credentials.get(key) or "").strip():
                flag = _credential_flag(params.dns_provider, key)
                problems.append(f"{flag} is required for the {params.dns_provider} DNS provider")

    if params.import_certificate:
        if not params.fms_username:
            problems.append("--fms-username is required when importing the certificate")
        if not params.fms_password:
            problems.append("--fms-password is required when importing the certificate")

    if params.restart_after_import and not params.import_certificate:
        logger.warning("--restart-fms has no effect without --import-cert")

    if problems:
        for problem in problems:
            logger.error(problem)
        raise ParameterValidationError("Parameter validation failed", problems=problems)


def _credential_flag(provider: str, key: str) -> str:
    if provider == "digitalocean":
        return "--do-token"
    if provider == "linode":
        return "--linode-token"
    return "--aws-" + key.replace("_", "-")
