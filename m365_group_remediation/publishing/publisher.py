"""
Evidence Publisher — hands the finished ledger artifacts to a sink at job end.

Sinks implement ``publish(local_path, destination)``:
  * BlobContainerSink uploads to an Azure Storage container (Blob REST API,
    Put Blob with a SAS token), where the notification watcher picks up new
    ``GroupRemediation_Log_*.txt`` blobs;
  * DirectorySink copies into a local or UNC folder.

A failed upload is logged and reported in the PublishResult; it never changes
the remediation outcomes already recorded.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import quote

import httpx

from ..config import PublishConfig, REQUEST_TIMEOUT, CONNECT_TIMEOUT

logger = logging.getLogger("m365_group_remediation.publishing")

BLOB_API_VERSION = "2021-08-06"


class PublishError(Exception):
    """Raised by a sink when an artifact could not be persisted."""
    pass


class PublishSink(Protocol):
    async def publish(self, local_path: Path, destination: str) -> str: ...


class DirectorySink:
    """Copies artifacts into a directory."""

    async def publish(self, local_path: Path, destination: str) -> str:
        target_dir = Path(destination)
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            target = target_dir / local_path.name
            shutil.copy2(local_path, target)
        except OSError as e:
            raise PublishError(f"Copy of {local_path.name} to {destination} failed: {e}") from e
        return str(target)


class BlobContainerSink:
    """
    Uploads artifacts as block blobs.
    ``destination`` is the container URL, e.g.
    https://account.blob.core.windows.net/remediation-logs
    """

    def __init__(
        self,
        sas_token: str = "",
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.sas_token = sas_token.lstrip("?")
        self._transport = transport

    def blob_url(self, local_path: Path, destination: str) -> str:
        url = f"{destination.rstrip('/')}/{quote(local_path.name)}"
        if self.sas_token:
            url = f"{url}?{self.sas_token}"
        return url

    async def publish(self, local_path: Path, destination: str) -> str:
        url = self.blob_url(local_path, destination)
        public_url = url.split("?", 1)[0]
        try:
            content = local_path.read_bytes()
        except OSError as e:
            raise PublishError(f"Cannot read {local_path}: {e}") from e

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(REQUEST_TIMEOUT, connect=CONNECT_TIMEOUT),
            transport=self._transport,
        ) as client:
            try:
                response = await client.put(
                    url,
                    content=content,
                    headers={
                        "x-ms-blob-type": "BlockBlob",
                        "x-ms-version": BLOB_API_VERSION,
                        "Content-Type": "text/plain; charset=utf-8",
                    },
                )
            except httpx.HTTPError as e:
                raise PublishError(f"Upload of {local_path.name} failed: {e}") from e

        if response.status_code not in (200, 201):
            raise PublishError(
                f"Upload of {local_path.name} failed: HTTP {response.status_code} "
                f"{response.text[:200]}"
            )
        return public_url


@dataclass
class PublishResult:
    destination: str = ""
    published: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "destination": self.destination,
            "published": self.published,
            "errors": self.errors,
            "skipped": self.skipped,
        }


class EvidencePublisher:
    """Publishes every artifact through one sink; never raises."""

    def __init__(self, sink: Optional[PublishSink], destination: str = ""):
        self.sink = sink
        self.destination = destination

    async def publish(self, artifacts: list[Path]) -> PublishResult:
        result = PublishResult(destination=self.destination)
        if self.sink is None:
            result.skipped = True
            logger.info("No publish destination configured; artifacts kept locally.")
            return result

        for path in artifacts:
            try:
                location = await self.sink.publish(Path(path), self.destination)
                result.published.append(location)
                logger.info(f"Published {Path(path).name} -> {location}")
            except Exception as e:
                msg = f"{Path(path).name}: {type(e).__name__}: {e}"
                result.errors.append(msg)
                logger.error(f"Publish failed for {msg}")
        return result


def build_publisher(config: PublishConfig, sas_token: str = "") -> EvidencePublisher:
    if config.mode == "blob":
        return EvidencePublisher(
            BlobContainerSink(sas_token=sas_token or config.sas_token),
            config.destination,
        )
    if config.mode == "directory":
        return EvidencePublisher(DirectorySink(), config.destination)
    return EvidencePublisher(None)
