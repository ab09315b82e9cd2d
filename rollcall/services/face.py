"""
Face verification collaborator and the gate that applies it.

The comparison service is slow and fallible, so every call runs under a
timeout, and any failure to get an answer closes the gate. When
``FACE_VERIFICATION_BYPASS`` is set at startup the gate never calls the
service; each skipped check is logged at warning instead.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Protocol

import httpx

from rollcall.core.exceptions import (FaceMismatch, MissingEvidence, NoFaceDetected,
                                      NotFound, RollcallError)
from rollcall.services.directory import WorkerIdentity
from rollcall.services.storage import PhotoStorage

logger = logging.getLogger(__name__)


class FaceVerifier(Protocol):
    async def compare(self, reference: bytes, candidate: bytes) -> bool:
        """Return True on a match; raise ``NoFaceDetected`` if a photo has no face."""
        ...


class HttpFaceVerifier:
    """Client for an HTTP face comparison service.

    POSTs both images base64-encoded and expects ``{"isMatch": bool}``, or
    ``{"error": "NoFaceDetected"}`` with a 4xx status.
    """

    def __init__(
        self,
        base_url: str,
        *,
        similarity_threshold: float = 90.0,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=timeout, transport=transport
        )
        self._threshold = similarity_threshold

    async def compare(self, reference: bytes, candidate: bytes) -> bool:
        response = await self._client.post(
            "/compare",
            json={
                "sourceImage": base64.b64encode(reference).decode("ascii"),
                "targetImage": base64.b64encode(candidate).decode("ascii"),
                "similarityThreshold": self._threshold,
            },
        )
        if response.status_code in (400, 422):
            body = response.json() if response.content else {}
            if body.get("error") == "NoFaceDetected":
                raise NoFaceDetected("No face detected in the photo. Please retry.")
        response.raise_for_status()
        return bool(response.json().get("isMatch"))

    async def aclose(self) -> None:
        await self._client.aclose()


class FaceVerificationGate:
    """Decides whether a submitted photo may stand in for *worker*."""

    def __init__(
        self,
        verifier: FaceVerifier | None,
        storage: PhotoStorage,
        *,
        bypass: bool,
        timeout: float,
    ) -> None:
        self._verifier = verifier
        self._storage = storage
        self._bypass = bypass
        self._timeout = timeout
        if bypass:
            logger.warning("Face verification bypass is ENABLED for this process")

    async def verify(self, worker: WorkerIdentity, photo_ref: str) -> None:
        if self._bypass:
            logger.warning(
                "Face verification bypassed for user %d (photo %s)", worker.id, photo_ref
            )
            return

        if not worker.reference_photo:
            raise MissingEvidence(
                f"No reference photo on file for user {worker.id}",
                field="photo",
            )
        if self._verifier is None:
            raise FaceMismatch("Face verification service is not configured")

        try:
            is_match = await asyncio.wait_for(
                self._compare(self._verifier, worker, photo_ref), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Face verification timed out for user %d", worker.id)
            raise FaceMismatch("Face verification timed out") from None
        except httpx.HTTPError as exc:
            logger.warning("Face verification unavailable for user %d: %s", worker.id, exc)
            raise FaceMismatch("Face verification service unavailable") from exc
        except RollcallError:
            raise
        except Exception as exc:
            logger.warning("Face verification failed for user %d: %r", worker.id, exc)
            raise FaceMismatch("Face verification could not be completed") from exc

        if not is_match:
            logger.info("Face mismatch for user %d", worker.id)
            raise FaceMismatch("Face verification failed", context={"user_id": worker.id})
        logger.info("Face verified for user %d", worker.id)

    async def _compare(self, verifier: FaceVerifier, worker: WorkerIdentity, photo_ref: str) -> bool:
        try:
            reference = await self._storage.fetch(worker.reference_photo)
        except NotFound:
            raise MissingEvidence(
                f"Reference photo for user {worker.id} is missing from storage",
                field="photo",
            ) from None
        candidate = await self._storage.fetch(photo_ref)
        return await verifier.compare(reference, candidate)
