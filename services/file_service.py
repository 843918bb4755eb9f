import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from config import settings
from schemas.submission import FileRecord
from services.exceptions import UpstreamFailure

# Configure logging
logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/plain",
    "text/csv",
})


@dataclass
class IncomingFile:
    """One file part of a submission request, tagged with the field it was sent under"""
    field_name: str
    filename: str
    content: bytes
    content_type: str
    size: Optional[int] = None

    def __post_init__(self):
        if self.size is None:
            self.size = len(self.content)


class BlobStorage:
    """S3 bucket holding submission uploads"""

    def __init__(self):
        self.s3_client = None
        self.s3_bucket_name = settings.S3_BUCKET_NAME
        self.timeout = settings.UPSTREAM_TIMEOUT_SECONDS
        # calls still running after their timeout, plus their cleanups
        self._late_calls = set()

        # Initialize S3 if configured
        if self.s3_bucket_name:
            try:
                self.s3_client = boto3.client(
                    's3',
                    aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                    aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                    region_name=settings.AWS_DEFAULT_REGION,
                    endpoint_url=settings.S3_ENDPOINT_URL,
                    config=BotoConfig(
                        connect_timeout=self.timeout,
                        read_timeout=self.timeout,
                        retries={"max_attempts": 2},
                    ),
                )
                logger.info("S3 client initialized successfully")
            except Exception as e:
                logger.error(f"Failed to initialize S3 client: {str(e)}")
                self.s3_client = None

    async def _call(self, operation: str, method: str, on_late_success=None, **kwargs):
        """
        Run a blocking S3 call in a worker thread, bounded by the upstream timeout.

        The thread cannot be cancelled, so after a timeout it keeps running;
        ``on_late_success`` is called if it still completes.
        """
        if not self.s3_client or not self.s3_bucket_name:
            raise UpstreamFailure("File storage is not configured")
        func = getattr(self.s3_client, method)
        task = asyncio.ensure_future(
            asyncio.to_thread(func, Bucket=self.s3_bucket_name, **kwargs)
        )
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            self._track(task, lambda t: self._after_late_call(t, operation, on_late_success))
            raise UpstreamFailure(f"S3 {operation} timed out") from e
        except (ClientError, BotoCoreError) as e:
            raise UpstreamFailure(f"S3 {operation} failed: {str(e)}") from e

    def _track(self, task: asyncio.Future, callback=None) -> None:
        self._late_calls.add(task)
        task.add_done_callback(self._late_calls.discard)
        if callback:
            task.add_done_callback(callback)

    @staticmethod
    def _after_late_call(task: asyncio.Future, operation: str, on_late_success) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning(f"S3 {operation} failed after timing out: {str(error)}")
        elif on_late_success:
            on_late_success()

    async def _discard(self, key: str) -> None:
        try:
            await self.delete([key])
            logger.info(f"Removed late upload {key}")
        except Exception as e:
            logger.error(f"Could not remove late upload {key}: {str(e)}")

    async def upload(self, key: str, content: bytes, content_type: str) -> str:
        # an upload that lands after its timeout is not referenced by any submission
        def remove_late_upload():
            self._track(asyncio.ensure_future(self._discard(key)))

        await self._call(
            "upload",
            "put_object",
            on_late_success=remove_late_upload,
            Key=key,
            Body=content,
            ContentType=content_type,
            CacheControl="max-age=3600",
        )
        logger.info(f"Successfully uploaded file to S3: {key}")
        return key

    async def download(self, key: str) -> bytes:
        response = await self._call(
            "download", "get_object", Key=key
        )
        return await asyncio.to_thread(response["Body"].read)

    async def delete(self, keys: List[str]) -> None:
        if not keys:
            return
        response = await self._call(
            "delete",
            "delete_objects",
            Delete={"Objects": [{"Key": key} for key in keys], "Quiet": True},
        )
        if response and response.get("Errors"):
            raise UpstreamFailure(f"S3 delete failed for {len(response['Errors'])} object(s)")


class FileIngestionService:
    def __init__(self, storage, max_file_size: int = settings.MAX_UPLOAD_BYTES):
        self.storage = storage
        self.max_file_size = max_file_size

    def _validate_file(self, file: IncomingFile) -> Optional[str]:
        """Reason the file is refused, or None when it is acceptable"""
        if file.size > self.max_file_size or len(file.content) > self.max_file_size:
            return f"File size ({file.size} bytes) exceeds maximum allowed size ({self.max_file_size} bytes)"

        content_type = (file.content_type or "").split(";")[0].strip().lower()
        if content_type not in ALLOWED_MIME_TYPES:
            return f"File type {content_type or 'unknown'} not allowed"

        return None

    def screen(self, files: Iterable[IncomingFile]) -> Tuple[List[IncomingFile], List[Tuple[IncomingFile, str]]]:
        """Split files into accepted and rejected ones. No storage calls happen here."""
        accepted, rejected = [], []
        for file in files:
            reason = self._validate_file(file)
            if reason:
                logger.warning(f"Rejected upload '{file.filename}' for field '{file.field_name}': {reason}")
                rejected.append((file, reason))
            else:
                accepted.append(file)
        return accepted, rejected

    @staticmethod
    def storage_key(filename: str) -> str:
        return f"{uuid.uuid4()}-{os.path.basename(filename or 'upload')}"

    async def _store(self, file: IncomingFile) -> Optional[Dict[str, Any]]:
        key = self.storage_key(file.filename)
        try:
            path = await self.storage.upload(key, file.content, file.content_type)
        except Exception as e:
            logger.error(f"File upload error for '{file.filename}' (field '{file.field_name}'): {str(e)}")
            return None

        return FileRecord(
            name=file.filename,
            path=path,
            size=file.size,
            type=file.content_type,
            field_name=file.field_name,
        ).model_dump(by_alias=True)

    async def ingest(self, files: Iterable[IncomingFile]) -> List[Dict[str, Any]]:
        """
        Store every acceptable file and return the FileRecords that made it.

        Files failing screening are dropped before any upload, and an upload
        failure only drops that one file. The result keeps input order.
        """
        accepted, _ = self.screen(files)
        if not accepted:
            return []

        results = await asyncio.gather(*(self._store(file) for file in accepted))
        return [record for record in results if record is not None]


# Global storage instance
blob_storage = BlobStorage()

def get_storage():
    return blob_storage
