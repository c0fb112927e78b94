"""Generation workflow: upload a car and a rim image, then process them.

The backend works in two phases. ``upload`` stores both images and creates a
job; ``process`` runs the rim swap and returns the URL of the rendered image.
Both go through AuthenticatedTransport, so an expired access token is
refreshed transparently.
"""

from __future__ import annotations

import enum
import logging
import mimetypes
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError as SchemaError

from .config import ClientSettings
from .errors import (
    ApiError,
    MissingImageError,
    TransportError,
    error_from_response,
)
from .schemas import GenerationRecord, ProcessResponse, UploadResponse
from .transport import AuthenticatedTransport, FileField

logger = logging.getLogger(__name__)


class GenerationStatus(str, enum.Enum):
    CREATED = "created"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class ImageAsset:
    """An image file to upload."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @classmethod
    def from_path(cls, path: str | Path) -> "ImageAsset":
        """Read an image from disk, guessing its content type from the suffix."""
        path = Path(path)
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return cls(filename=path.name, content=path.read_bytes(), content_type=content_type)

    def as_file_field(self) -> FileField:
        return (self.filename, self.content, self.content_type)


@dataclass(frozen=True)
class GenerationJob:
    """One unit of the backend's image-processing workflow."""

    id: str
    status: GenerationStatus
    car_image_ref: str | None = None
    rim_image_ref: str | None = None
    result_ref: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None

    @property
    def is_completed(self) -> bool:
        return self.status is GenerationStatus.COMPLETED

    @classmethod
    def from_record(cls, record: GenerationRecord) -> "GenerationJob":
        try:
            status = GenerationStatus(record.status.lower())
        except ValueError:
            logger.warning("Unknown generation status %r for job %s", record.status, record.id)
            status = GenerationStatus.FAILED
        return cls(
            id=record.id,
            status=status,
            car_image_ref=record.car_image_url,
            rim_image_ref=record.rim_image_url,
            result_ref=record.processed_image_url,
            error_message=record.error_message,
            created_at=record.created_at,
        )


class GenerationClient:
    """Upload/process workflow over the authenticated transport.

    Usage:
        generations = GenerationClient(settings, transport)

        job = await generations.upload(car, rim)
        job = await generations.process(job.id)
        if job.is_completed:
            show(job.result_ref)
    """

    def __init__(self, settings: ClientSettings, transport: AuthenticatedTransport):
        self._settings = settings
        self._transport = transport
        # Uploaded but not yet processed, keyed by id.
        self._jobs: dict[str, GenerationJob] = {}

    async def upload(
        self,
        car_image: ImageAsset | None,
        rim_image: ImageAsset | None,
    ) -> GenerationJob:
        """Upload both images and create a job.

        Not idempotent: every call creates a new job.

        Raises:
            MissingImageError: If either image is missing (no request is sent)
            ValidationError: If the backend rejects the upload
            SessionExpiredError: If the session could not be refreshed
            TransportError: On network failure
            ApiError: On any other unexpected response
        """
        if car_image is None or rim_image is None:
            raise MissingImageError("Please upload both a car and a rim image.")

        response = await self._call(
            "POST",
            self._settings.upload_path,
            files={
                "car_file": car_image.as_file_field(),
                "rim_file": rim_image.as_file_field(),
            },
        )
        if not response.is_success:
            raise error_from_response(response)

        uploaded = self._parse(response, UploadResponse)
        job = GenerationJob(
            id=uploaded.id,
            status=GenerationStatus.CREATED,
            car_image_ref=car_image.filename,
            rim_image_ref=rim_image.filename,
            created_at=datetime.now(timezone.utc),
        )
        self._jobs[job.id] = job
        logger.info("Uploaded images as generation %s", job.id)
        return job

    async def process(self, job_id: str) -> GenerationJob:
        """Run processing for an uploaded job.

        A backend rejection yields the job with status FAILED and the
        normalized message in ``error_message``. Uploaded jobs are
        remembered only until they reach one of those terminal states.

        Raises:
            SessionExpiredError: If the session could not be refreshed
            TransportError: On network failure
            ApiError: If a success response is malformed
        """
        if not job_id:
            raise ValueError("job_id required")

        job = self._jobs.get(job_id) or GenerationJob(id=job_id, status=GenerationStatus.CREATED)
        response = await self._call("POST", self._settings.process_path(job_id))

        if not response.is_success:
            error = error_from_response(response)
            logger.info("Generation %s failed: %s", job_id, error.message)
            job = replace(job, status=GenerationStatus.FAILED, error_message=error.message)
        else:
            processed = self._parse(response, ProcessResponse)
            job = replace(
                job,
                status=GenerationStatus.COMPLETED,
                result_ref=processed.processed_image_url,
                error_message=None,
            )
            logger.info("Generation %s completed", job_id)

        self._jobs.pop(job_id, None)
        return job

    async def generate(
        self,
        car_image: ImageAsset | None,
        rim_image: ImageAsset | None,
    ) -> GenerationJob:
        """Upload then process in one step."""
        job = await self.upload(car_image, rim_image)
        return await self.process(job.id)

    async def list_completed(self) -> list[GenerationJob]:
        """List the user's completed generations (newest first as served)."""
        response = await self._call(
            "GET",
            self._settings.generations_path,
            params={"status": "completed"},
        )
        if not response.is_success:
            raise error_from_response(response)

        try:
            data: Any = response.json()
        except ValueError as e:
            raise ApiError(
                "Invalid generations response",
                status_code=response.status_code,
                response=response,
            ) from e
        if not isinstance(data, list):
            raise ApiError(
                "Invalid generations response: expected a list",
                status_code=response.status_code,
                response=response,
            )

        jobs = []
        for item in data:
            try:
                jobs.append(GenerationJob.from_record(GenerationRecord.model_validate(item)))
            except SchemaError as e:
                raise ApiError(
                    f"Invalid generation record: {e}",
                    status_code=response.status_code,
                    response=response,
                ) from e
        return jobs

    async def _call(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if method == "GET":
            send = self._transport.get
        else:
            send = self._transport.post
        try:
            return await send(path, **kwargs)
        except httpx.TransportError as e:
            raise TransportError(f"Network error calling {path}: {e}") from e

    @staticmethod
    def _parse(response: httpx.Response, schema: type[BaseModel]) -> Any:
        try:
            return schema.model_validate(response.json())
        except (ValueError, SchemaError) as e:
            raise ApiError(
                f"Invalid response from {response.request.url.path}: {e}",
                status_code=response.status_code,
                response=response,
            ) from e
