"""
core/requestlog.py -- One JSON file per inbound request.

Usage:
    log = RequestLog(Path("/srv/logs"))
    log.write(RequestRecord(from_ip="203.0.113.7:51234", method="GET", ...))

Each record lands in logs_dir/<nanosecond timestamp>. Two requests in the
same nanosecond step forward one nanosecond at a time; the file is opened
with exclusive create, so claiming a name and writing it are one step and
two writers can never claim the same name.
"""

import base64
import json
import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger("sitegate.requestlog")

_MAX_SLOTS = 1_000_000


@dataclass
class RequestRecord:
    """Everything logged about a request. body is the raw request body."""

    from_ip: str
    method: str
    host: str
    path: str
    query: dict[str, list[str]] = field(default_factory=dict)
    headers: dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""

    def to_json(self) -> str:
        return json.dumps(
            {
                "from_ip": self.from_ip,
                "method": self.method,
                "host": self.host,
                "path": self.path,
                "query": self.query,
                "headers": self.headers,
                "body": base64.b64encode(self.body).decode("ascii"),
            },
            indent=2,
        )


def canonical_header_name(name: str) -> str:
    """user-agent -> User-Agent."""
    return "-".join(part.capitalize() for part in name.split("-"))


class RequestLog:
    def __init__(self, logs_dir: Path) -> None:
        self.logs_dir = Path(logs_dir)
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def write(self, record: RequestRecord) -> Path:
        """Write record to a fresh timestamp-named file and return its path."""
        data = record.to_json().encode("utf-8")
        timestamp = time.time_ns()
        for _ in range(_MAX_SLOTS):
            path = self.logs_dir / str(timestamp)
            try:
                fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
            except FileExistsError:
                timestamp += 1
                continue
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            return path
        raise FileExistsError(f"no free log slot after {_MAX_SLOTS} attempts in {self.logs_dir}")
