"""
Schema Snapshot Store

Persists `SchemaGraph.to_json()` blobs so repeated requests can skip live
introspection.

Layout
------
Snapshots are content-addressed files under ``settings.snapshot_dir``::

    <key>-<sha256 prefix>.json

Saving identical content twice yields the same location. A snapshot location
is either such a file path or an http(s) URL serving the same JSON.

Security
--------
- Keys are validated (1-64 alphanumeric chars, hyphens, underscores)
- Local locations must resolve inside the snapshot directory
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from pathlib import Path
from typing import Optional

import httpx

from ..config import settings
from ..graph.schema_graph import SchemaGraph, SchemaGraphError

logger = logging.getLogger("sqs.snapshots")


# ---------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------

SNAPSHOT_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{1,64}$")

DIGEST_LENGTH = 16


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class SnapshotError(RuntimeError):
    """Raised when a snapshot cannot be written or read."""


def validate_snapshot_key(key: str) -> str:
    if not key or not isinstance(key, str):
        raise SnapshotError("Snapshot key is required")

    key = key.strip()
    if not SNAPSHOT_KEY_PATTERN.match(key):
        raise SnapshotError(
            f"Invalid snapshot key '{key}': must be 1-64 alphanumeric chars, hyphens, or underscores"
        )
    return key


# ---------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------

class SnapshotStore:
    """
    File-backed snapshot store with read-only URL support.
    """

    def __init__(
        self,
        root: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.root = Path(root or settings.snapshot_dir)
        self.timeout = timeout
        self._transport = transport

    def save(self, key: str, graph: SchemaGraph) -> str:
        """
        Write `graph` and return its location.

        Raises
        ------
        SnapshotError
            If the key is invalid or the file cannot be written.
        """
        key = validate_snapshot_key(key)

        body = json.dumps(graph.to_json(), sort_keys=True, separators=(",", ":"))
        digest = hashlib.sha256(body.encode("utf-8")).hexdigest()[:DIGEST_LENGTH]
        path = self.root / f"{key}-{digest}.json"

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            if not path.exists():
                path.write_text(body, encoding="utf-8")
        except OSError as exc:
            raise SnapshotError(f"Failed to write snapshot {path.name}: {exc}") from exc

        logger.info("Saved schema snapshot %s", path.name)
        return str(path)

    async def load(self, location: str) -> SchemaGraph:
        """
        Read a snapshot from a local path or an http(s) URL.

        Raises
        ------
        SnapshotError
            If the location is unreachable, outside the snapshot directory,
            or does not contain a valid graph.
        """
        if location.startswith(("http://", "https://")):
            raw = await self._fetch(location)
        else:
            raw = self._read_local(location)

        try:
            data = json.loads(raw)
            return SchemaGraph.from_json(data)
        except (json.JSONDecodeError, SchemaGraphError) as exc:
            raise SnapshotError(f"Invalid schema snapshot at {location}: {exc}") from exc

    def _read_local(self, location: str) -> str:
        path = Path(location)
        if not path.is_absolute() and path.parent == Path("."):
            path = self.root / path

        resolved = path.resolve()
        if not resolved.is_relative_to(self.root.resolve()):
            raise SnapshotError("Snapshot location is outside the snapshot directory")

        try:
            return resolved.read_text(encoding="utf-8")
        except OSError as exc:
            raise SnapshotError(f"Failed to read snapshot {resolved.name}: {exc}") from exc

    async def _fetch(self, url: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.text
        except httpx.HTTPError as exc:
            raise SnapshotError(
                f"Failed to fetch snapshot: {type(exc).__name__}"
            ) from exc
