"""
Single-flight locking per hostname.

Two runs for the same hostname would race on the certbot live directory,
the state file, and the DNS TXT records of the challenge.
"""

import fcntl
import os
from contextlib import contextmanager
from typing import Iterator

from .errors import LockError, RunInProgressError
from .logger import get_logger


def lock_path(lock_dir: str, hostname: str) -> str:
    return os.path.join(lock_dir, f".{hostname}.lock")


@contextmanager
def hostname_lock(lock_dir: str, hostname: str) -> Iterator[str]:
    """
    Hold an exclusive, non-blocking lock for a hostname.

    The lock is an flock on a file in lock_dir, so the kernel drops it if
    the process dies. The file itself is left in place.

    Args:
        lock_dir: Directory for lock files
        hostname: Hostname being processed

    Yields:
        Path of the lock file

    Raises:
        RunInProgressError: If another process holds the lock
        LockError: If the lock file cannot be created
    """
    logger = get_logger()
    path = lock_path(lock_dir, hostname)
    try:
        os.makedirs(lock_dir, exist_ok=True)
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o600)
    except OSError as e:
        raise LockError(f"Cannot create lock file {path}: {e}")

    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            raise RunInProgressError(
                f"Another run for {hostname} is in progress (lock {path})"
            )

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        logger.debug(f"Acquired lock {path}")

        try:
            yield path
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            logger.debug(f"Released lock {path}")
    finally:
        os.close(fd)
