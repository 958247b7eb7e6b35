"""Publishing package — delivery of run evidence."""

from .publisher import (
    BlobContainerSink,
    DirectorySink,
    EvidencePublisher,
    PublishError,
    PublishResult,
    build_publisher,
)

__all__ = [
    "BlobContainerSink",
    "DirectorySink",
    "EvidencePublisher",
    "PublishError",
    "PublishResult",
    "build_publisher",
]
