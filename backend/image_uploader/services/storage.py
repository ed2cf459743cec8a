import logging
import mimetypes
import shutil
import threading
from pathlib import Path
from typing import Any, Final
from urllib.parse import quote

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from image_uploader.core.config import get_settings
from image_uploader.schemas import StoreConfig, StoreResult, WaitPolicy

logger = logging.getLogger(__name__)

_MISSING_CODES: Final = frozenset({"404", "NoSuchKey", "NotFound"})


class ObjectStoreError(Exception):
    """Raised when an uploaded object never becomes readable."""


def _is_missing(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") in _MISSING_CODES


class ObjectStoreClient:
    """S3-compatible store that publishes local files under a key."""

    scheme: Final[str] = "s3"

    def __init__(self, config: StoreConfig, client: Any | None = None) -> None:
        self.config = config
        self.bucket = config.bucket
        if client is None:
            session = boto3.session.Session()
            client = session.client(
                "s3",
                endpoint_url=config.endpoint_url,
                aws_access_key_id=config.access_key,
                aws_secret_access_key=config.secret_key,
                region_name=config.region,
                config=Config(signature_version="s3v4"),
            )
        self.client = client

    def object_url(self, key: str) -> str:
        quoted = quote(key)
        if self.config.public_base_url:
            return f"{self.config.public_base_url.rstrip('/')}/{quoted}"
        if self.config.endpoint_url:
            return f"{self.config.endpoint_url.rstrip('/')}/{self.bucket}/{quoted}"
        if self.config.region:
            return f"https://{self.bucket}.s3.{self.config.region}.amazonaws.com/{quoted}"
        return f"https://{self.bucket}.s3.amazonaws.com/{quoted}"

    def delete_object(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if not _is_missing(exc):
                raise

    def upload(
        self,
        key: str,
        local_path: str | Path,
        *,
        wait: WaitPolicy | None = None,
        cancel: threading.Event | None = None,
    ) -> StoreResult:
        """Replace the object at ``key`` with ``local_path`` and return its public URL.

        Store failures are logged and reported through ``StoreResult.error``
        instead of being raised.
        """
        try:
            self.delete_object(key)
            self._put_file(key, Path(local_path))
            self._wait_until_exists(key, wait or self.config.wait, cancel)
        except (BotoCoreError, ClientError, ObjectStoreError) as exc:
            logger.error("Object store upload of %s failed: %s", key, exc)
            return StoreResult(key=key, error=str(exc))
        except Exception as exc:
            logger.exception("Upload of %s to the object store failed", key)
            return StoreResult(key=key, error=str(exc) or exc.__class__.__name__)

        url = self.object_url(key)
        logger.info("Uploaded %s to %s", local_path, url)
        return StoreResult(key=key, url=url)

    def _put_file(self, key: str, local_path: Path) -> None:
        content_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
        with local_path.open("rb") as body:
            self.client.put_object(
                ACL=self.config.acl,
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
            )

    def _wait_until_exists(
        self,
        key: str,
        policy: WaitPolicy,
        cancel: threading.Event | None,
    ) -> None:
        cancel = cancel or threading.Event()
        for attempt in range(1, policy.max_attempts + 1):
            if cancel.is_set():
                raise ObjectStoreError(f"Upload of {key} cancelled")
            try:
                self.client.head_object(Bucket=self.bucket, Key=key)
                return
            except ClientError as exc:
                if not _is_missing(exc):
                    raise
            logger.debug(
                "Object %s not visible yet (attempt %d/%d)", key, attempt, policy.max_attempts
            )
            if attempt < policy.max_attempts and cancel.wait(policy.delay_seconds):
                raise ObjectStoreError(f"Upload of {key} cancelled")
        raise ObjectStoreError(
            f"Object {key} not readable after {policy.max_attempts} attempts"
        )


class LocalObjectStore(ObjectStoreClient):
    """Local filesystem store intended for development use."""

    scheme: Final[str] = "local"

    def __init__(self, base_path: str | Path, config: StoreConfig) -> None:  # type: ignore[override]
        self.config = config
        self.bucket = config.bucket
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _key_path(self, key: str) -> Path:
        # Prevent directory traversal by resolving inside base path
        candidate = self.base_path.joinpath(*Path(key).parts).resolve()
        if not candidate.is_relative_to(self.base_path):
            raise ValueError("Invalid storage key")
        return candidate

    def object_url(self, key: str) -> str:
        if self.config.public_base_url:
            return super().object_url(key)
        return self._key_path(key).as_uri()

    def delete_object(self, key: str) -> None:  # type: ignore[override]
        self._key_path(key).unlink(missing_ok=True)

    def _put_file(self, key: str, local_path: Path) -> None:  # type: ignore[override]
        target = self._key_path(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(local_path, target)

    def _wait_until_exists(  # type: ignore[override]
        self,
        key: str,
        policy: WaitPolicy,
        cancel: threading.Event | None,
    ) -> None:
        if not self._key_path(key).is_file():
            raise ObjectStoreError(f"Object {key} missing after copy")


_object_store: ObjectStoreClient | None = None


def get_object_store() -> ObjectStoreClient:
    global _object_store
    if _object_store is None:
        settings = get_settings()
        if settings.storage_backend == "local":
            _object_store = LocalObjectStore(settings.local_storage_dir, settings.store_config())
        else:
            _object_store = ObjectStoreClient(settings.store_config())
    return _object_store


def reset_object_store() -> None:
    global _object_store
    _object_store = None
