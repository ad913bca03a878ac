"""
core/hosts.py -- The host directory namespace.

Each immediate subdirectory of the public root is one virtual host. The same
listing is the content namespace (web/) and the certificate allowlist
(certs/), so both go through this module.
"""

import os
from pathlib import Path

_FORBIDDEN_HOST_CHARS = ("/", "\\", "\x00")


def list_hosts(root: Path) -> list[str]:
    """Return the names of the immediate subdirectories of root, sorted.

    Raises OSError if root cannot be listed. Symlinks to directories count,
    matching what a request for that host would serve.
    """
    with os.scandir(root) as entries:
        return sorted(entry.name for entry in entries if entry.is_dir())


def is_valid_host_segment(host: str) -> bool:
    """Return True if a Host header value can name a directory under a root."""
    if not host or host in (".", ".."):
        return False
    return not any(c in host for c in _FORBIDDEN_HOST_CHARS)
