"""
Common utility functions.

Provides helpers for file ownership, atomic writes, expiry formatting,
and masking secrets in logged command lines.
"""

import grp
import os
import pwd
import tempfile
from typing import Iterable, List, Optional, Sequence, Tuple


def lookup_account(user: str, group: str) -> Optional[Tuple[int, int]]:
    """
    Resolve a service account to numeric ids.

    Args:
        user: User name
        group: Group name

    Returns:
        (uid, gid) or None if either does not exist on this host
    """
    try:
        uid = pwd.getpwnam(user).pw_uid
        gid = grp.getgrnam(group).gr_gid
    except KeyError:
        return None
    return uid, gid


def chown_to_account(paths: Iterable[str], user: str, group: str) -> bool:
    """
    Give files to a service account.

    Args:
        paths: Files to change
        user: Owning user
        group: Owning group

    Returns:
        True if ownership was changed, False if the account does not exist

    Raises:
        OSError: If a chown call fails
    """
    ids = lookup_account(user, group)
    if ids is None:
        return False
    uid, gid = ids
    for path in paths:
        os.chown(path, uid, gid)
    return True


def atomic_write_text(path: str, content: str, mode: int = 0o600) -> None:
    """
    Atomically replace a text file.

    The content goes to a temporary file in the same directory, which is
    flushed, given its final mode, and renamed over the target. Readers see
    either the old file or the new one, never a partial write.

    Raises:
        OSError: If any step fails; the temporary file is removed
    """
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=directory, prefix=f".{os.path.basename(path)}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fchmod(f.fileno(), mode)
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


def format_expiration_status(days: Optional[int], threshold_days: int = 30) -> str:
    """
    Format a human-readable expiration status.

    Args:
        days: Days remaining, negative when expired
        threshold_days: Days threshold for "expiring" status

    Returns:
        Formatted status string
    """
    if days is None:
        return "Unknown expiration"

    if days < 0:
        return f"EXPIRED ({abs(days)} days ago)"
    elif days == 0:
        return "EXPIRES TODAY"
    elif days < threshold_days:
        return f"EXPIRING in {days} day{'s' if days != 1 else ''}"
    else:
        return f"Valid ({days} days remaining)"


def mask_command(cmd: Sequence[str], secrets: Iterable[Optional[str]]) -> str:
    """
    Render a command line for logging with secret values replaced.

    Args:
        cmd: Command and arguments
        secrets: Values that must not appear in logs

    Returns:
        Space-joined command with each secret shown as ****
    """
    hidden = {s for s in secrets if s}
    parts: List[str] = []
    for arg in cmd:
        parts.append("****" if arg in hidden else arg)
    return " ".join(parts)
