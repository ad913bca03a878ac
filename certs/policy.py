"""
certs/policy.py -- Host Policy Gate: may this hostname get a certificate?

The allowlist is not stored anywhere. It is the set of host directories under
the public content root, listed again on every decision, so adding or
removing a host directory takes effect on the next handshake without a
restart. A host is issuable exactly when it is servable.
"""

import logging
from pathlib import Path

from core.hosts import list_hosts

logger = logging.getLogger("sitegate.tls")


class HostNotAllowed(Exception):
    """Certificate issuance refused for a host with no content directory."""

    def __init__(self, host: str):
        self.host = host
        super().__init__(f"host {host!r} not allowed")


class HostPolicy:
    """Allow issuance iff public_dir/<host> is a directory right now."""

    def __init__(self, public_dir: Path) -> None:
        self.public_dir = Path(public_dir)

    def check(self, host: str) -> None:
        """Raise HostNotAllowed unless host is a configured host directory.

        An unreadable public root raises OSError, which callers treat as a
        refusal too.
        """
        if host not in list_hosts(self.public_dir):
            raise HostNotAllowed(host)

    def allows(self, host: str) -> bool:
        try:
            self.check(host)
        except HostNotAllowed:
            return False
        except OSError as e:
            logger.error("Cannot list host directories in %s: %s", self.public_dir, e)
            return False
        return True
