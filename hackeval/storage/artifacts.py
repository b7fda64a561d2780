"""Upload of roster artifacts (school ID documents) ahead of registration."""

from __future__ import annotations

import logging
import os
import secrets
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Mapping, Optional, Sequence

from dotenv import load_dotenv

from ..eligibility import ROSTER_SIZE, MemberDescriptor, MemberRole
from ..errors import ErrorCode, UpstreamError, ValidationError

if TYPE_CHECKING:
    from .api import BlobClient

logger = logging.getLogger(__name__)

load_dotenv()
ARTIFACT_PREFIX = "school-ids"
ALLOWED_CONTENT_TYPES = ("application/pdf",)
MAX_ARTIFACT_BYTES = int(os.getenv("ARTIFACT_MAX_BYTES", str(2 * 1024 * 1024)))
DEFAULT_MAX_WORKERS = int(os.getenv("UPLOAD_MAX_WORKERS", "4"))


@dataclass(frozen=True)
class ArtifactPayload:
    """An in-memory file attached to one roster slot."""

    filename: str
    content: bytes
    content_type: str = "application/pdf"


def generate_artifact_key(filename: str, prefix: str = ARTIFACT_PREFIX) -> str:
    """Return a fresh storage key such as ``school-ids/1712345678901-482913004.pdf``.

    The millisecond timestamp plus a random suffix keeps keys unique across
    concurrent registrations; the original extension is preserved.
    """

    suffix = PurePosixPath(filename).suffix.lower()
    stamp = int(time.time() * 1000)
    nonce = secrets.randbelow(10**9)
    return f"{prefix}/{stamp}-{nonce}{suffix}"


def validate_payloads(
    payloads: Mapping[int, ArtifactPayload],
    *,
    roster_size: int = ROSTER_SIZE,
    max_bytes: int = MAX_ARTIFACT_BYTES,
) -> None:
    """Reject payloads that must not be uploaded at all.

    Raises
    ------
    ValidationError
        ``INVALID_ARTIFACT`` for an out-of-range slot, a non-PDF file, an empty
        file or one larger than ``max_bytes``.
    """

    for slot, payload in payloads.items():
        if not isinstance(slot, int) or not 0 <= slot < roster_size:
            raise ValidationError(
                ErrorCode.INVALID_ARTIFACT,
                f"Artifact slot {slot!r} is outside the roster",
                {"slot": slot},
            )
        if payload.content_type not in ALLOWED_CONTENT_TYPES:
            raise ValidationError(
                ErrorCode.INVALID_ARTIFACT,
                "Only PDF files allowed",
                {"slot": slot, "content_type": payload.content_type},
            )
        size = len(payload.content)
        if size == 0 or size > max_bytes:
            raise ValidationError(
                ErrorCode.INVALID_ARTIFACT,
                f"Artifact must be between 1 and {max_bytes} bytes",
                {"slot": slot, "size": size},
            )


def check_artifact_slots(
    payloads: Mapping[int, ArtifactPayload],
    members: Sequence[MemberDescriptor],
) -> None:
    """Reject payloads attached to slots that do not take an identity document.

    Only SchoolStudent slots resolve artifacts.

    Raises
    ------
    ValidationError
        ``INVALID_ARTIFACT`` naming the first offending slot.
    """

    for slot in sorted(payloads):
        role = members[slot].role if 0 <= slot < len(members) else None
        if role is not MemberRole.SCHOOL_STUDENT:
            raise ValidationError(
                ErrorCode.INVALID_ARTIFACT,
                "School ID documents are only accepted for school students",
                {"slot": slot, "role": role.value if role else None},
            )


def resolve_artifacts(
    payloads: Mapping[int, ArtifactPayload],
    client: "BlobClient",
    *,
    max_workers: Optional[int] = None,
    roster_size: int = ROSTER_SIZE,
) -> dict[int, str]:
    """Upload every payload concurrently and map each slot to its public URL.

    All uploads are awaited before returning. If any of them fails, the whole
    call fails; URLs of uploads that did succeed are reported in the error
    details so they can be cleaned up, since nothing references them.

    Parameters
    ----------
    payloads : Mapping[int, ArtifactPayload]
        Files keyed by roster slot index.
    client : BlobClient
        Blob storage client used for the uploads.
    max_workers : Optional[int], default: None
        Upper bound on concurrent uploads. Defaults to ``UPLOAD_MAX_WORKERS``.
    roster_size : int, default: ``ROSTER_SIZE``
        Number of roster slots a payload may be attached to.

    Returns
    -------
    dict[int, str]
        Public URL for every slot in ``payloads``.

    Raises
    ------
    ValidationError
        If a payload fails :func:`validate_payloads`.
    UpstreamError
        ``ARTIFACT_UPLOAD_FAILED`` when at least one upload raised, timeouts
        included.
    """

    if not payloads:
        return {}
    validate_payloads(payloads, roster_size=roster_size)

    keys = {slot: generate_artifact_key(p.filename) for slot, p in payloads.items()}
    workers = max(1, min(max_workers or DEFAULT_MAX_WORKERS, len(payloads)))

    urls: dict[int, str] = {}
    failures: dict[int, str] = {}
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="artifact-upload") as pool:
        futures = {
            slot: pool.submit(client.upload, payload.content, keys[slot], payload.content_type)
            for slot, payload in payloads.items()
        }
        for slot, future in futures.items():
            try:
                urls[slot] = future.result()
            except Exception as exc:
                logger.error("Artifact upload failed for slot %s: %s", slot, exc)
                failures[slot] = str(exc)

    if failures:
        if urls:
            logger.warning(
                "Orphaned artifacts after failed upload batch: %s",
                sorted(urls.values()),
            )
        raise UpstreamError(
            ErrorCode.ARTIFACT_UPLOAD_FAILED,
            "Failed to upload school ID documents",
            {"failed_slots": sorted(failures), "orphaned_urls": sorted(urls.values())},
        )
    return urls


def attach_artifacts(
    members: Sequence[MemberDescriptor],
    urls: Mapping[int, str],
) -> list[MemberDescriptor]:
    """Return ``members`` with resolved artifact URLs set on their slots.

    Slots without an entry in ``urls`` are passed through unchanged.
    """

    return [
        member.with_artifact(urls[slot]) if slot in urls else member
        for slot, member in enumerate(members)
    ]
