"""
Persistent per-hostname state.

One JSON file per hostname remembers what the last successful run saw, so
the next run can tell a domain or environment switch from a routine check.
"""

import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .errors import StatePersistenceError
from .helpers import atomic_write_text, chown_to_account
from .logger import get_logger


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class StateRecord:
    """Bookkeeping written at the end of every successful run."""
    hostname: str
    email: str
    is_staging_environment: bool
    last_run_timestamp: datetime
    certificate_confirmed_present: bool

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "hostname": self.hostname,
            "email": self.email,
            "isStagingEnvironment": self.is_staging_environment,
            "lastRunTimestamp": self.last_run_timestamp.isoformat(),
            "certificateConfirmedPresent": self.certificate_confirmed_present,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StateRecord":
        """
        Build a record from its JSON form.

        Files written by the earlier shell tool (keys sandbox, last_run and
        cert_exists, with "true"/"false" strings) are accepted as well.

        Raises:
            ValueError: If a required field is missing or malformed
        """
        if not isinstance(data, dict):
            raise ValueError("state must be a JSON object")

        hostname = data.get("hostname")
        if not isinstance(hostname, str) or not hostname:
            raise ValueError("missing hostname")

        staging = _pick(data, "isStagingEnvironment", "sandbox")
        confirmed = _pick(data, "certificateConfirmedPresent", "cert_exists")
        last_run = _pick(data, "lastRunTimestamp", "last_run")
        if "lastRunTimestamp" not in data and not last_run:
            # legacy files can carry an empty last_run
            last_run = EPOCH.isoformat()

        return cls(
            hostname=hostname,
            email=data.get("email") or "",
            is_staging_environment=_parse_bool(staging, "isStagingEnvironment"),
            last_run_timestamp=_parse_timestamp(last_run),
            certificate_confirmed_present=_parse_bool(confirmed, "certificateConfirmedPresent"),
        )


def _pick(data: Dict[str, Any], key: str, legacy_key: str) -> Any:
    return data[key] if key in data else data.get(legacy_key)


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str) or not value:
        raise ValueError(f"lastRunTimestamp must be an ISO-8601 string, got {value!r}")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class StateStore:
    """
    Reads and writes StateRecords under a state directory.

    Writes replace the file atomically with owner-only permissions and hand
    it to the service account when that account exists.
    """

    def __init__(
        self,
        state_dir: str,
        owner_user: Optional[str] = None,
        owner_group: Optional[str] = None,
    ):
        self.state_dir = state_dir
        self.owner_user = owner_user
        self.owner_group = owner_group
        self.logger = get_logger()

    def path_for(self, hostname: str) -> str:
        return os.path.join(self.state_dir, f"state_{hostname}.json")

    def read(self, hostname: str) -> Optional[StateRecord]:
        """
        Read the state record for a hostname.

        Returns:
            The record, or None when there is no usable prior state
        """
        path = self.path_for(hostname)
        if not os.path.exists(path):
            self.logger.debug(f"No state file at {path}")
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return StateRecord.from_dict(data)
        except (OSError, ValueError) as e:
            self.logger.warning(
                f"Ignoring unreadable state file {path} ({e}); treating {hostname} as first seen"
            )
            return None

    def write(self, record: StateRecord) -> None:
        """
        Persist a state record, replacing any previous one.

        Raises:
            StatePersistenceError: If the file cannot be written
        """
        path = self.path_for(record.hostname)
        content = json.dumps(record.to_dict(), indent=4) + "\n"

        try:
            atomic_write_text(path, content, mode=0o600)
            if self.owner_user and self.owner_group:
                chown_to_account([path], self.owner_user, self.owner_group)
        except OSError as e:
            raise StatePersistenceError(f"Failed to write state file {path}: {e}")

        self.logger.debug(f"State written to {path}")
