from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Protocol
from uuid import uuid4

from image_uploader.schemas import (
    StoreResult,
    UploadFailure,
    UploadOutcome,
    UploadStage,
    UploadSuccess,
)
from image_uploader.services.imaging import (
    format_for_extension,
    normalize_orientation,
    read_image_size,
    resize_image,
)
from image_uploader.services.storage import ObjectStoreClient

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
THUMBNAIL_MAX_SIZE = 300
STAGING_SUBDIR = Path("images") / "chat_image"


class UploadSource(Protocol):
    """An incoming file that can be persisted to a local path once."""

    @property
    def size(self) -> int: ...

    @property
    def extension(self) -> str: ...

    def move_to(self, destination: Path) -> None: ...


class ImageRecord(Protocol):
    main: str | None
    thumbnail: str | None
    width: int | None
    height: int | None


class ImageUploader:
    """Stores an uploaded image and its thumbnail and fills in the record."""

    def __init__(
        self,
        store: ObjectStoreClient,
        public_dir: str | Path,
        *,
        max_upload_bytes: int = MAX_UPLOAD_BYTES,
        thumbnail_max_size: int = THUMBNAIL_MAX_SIZE,
    ) -> None:
        self.store = store
        self.staging_dir = Path(public_dir) / STAGING_SUBDIR
        self.max_upload_bytes = max_upload_bytes
        self.thumbnail_max_size = thumbnail_max_size

    def native_upload(self, path: str | Path, key: str) -> StoreResult:
        return self.store.upload(key, path)

    def staging_path(self, key: str, extension: str) -> Path:
        return self.staging_dir / f"{key}.{extension}"

    def upload(
        self,
        source: UploadSource,
        image: ImageRecord,
        cancel: threading.Event | None = None,
    ) -> UploadOutcome:
        """Run one upload attempt.

        ``image.main`` is assigned as soon as the full-size upload succeeds, so
        a failure at a later stage can leave it populated; the returned
        ``UploadFailure`` names the stage that failed. Local temp files are
        removed on every path past validation.
        """
        if source.size > self.max_upload_bytes:
            logger.info(
                "Rejected upload of %d bytes (limit %d)", source.size, self.max_upload_bytes
            )
            return UploadFailure(
                stage=UploadStage.VALIDATE,
                cause=f"File exceeds {self.max_upload_bytes} bytes",
            )

        extension = source.extension.lstrip(".").lower()
        if format_for_extension(extension) is None:
            logger.info("Rejected upload with extension %r", source.extension)
            return UploadFailure(
                stage=UploadStage.VALIDATE,
                cause=f"Unsupported image extension: {source.extension or '<none>'}",
            )

        main_file = self.staging_path(str(uuid4()), extension)

        try:
            self.staging_dir.mkdir(parents=True, exist_ok=True)
            source.move_to(main_file)
            normalize_orientation(main_file)
        except Exception as exc:
            return self._abort(UploadStage.STAGE, exc, main_file)

        main = self.store.upload(main_file.name, main_file, cancel=cancel)
        if not main.ok:
            return self._abort(UploadStage.UPLOAD_MAIN, main.error, main_file)
        image.main = main.url

        thumbnail_file = self.staging_path(str(uuid4()), extension)
        try:
            resize_image(main_file, thumbnail_file, self.thumbnail_max_size)
        except Exception as exc:
            return self._abort(UploadStage.RESIZE, exc, main_file, thumbnail_file)

        thumbnail = self.store.upload(thumbnail_file.name, thumbnail_file, cancel=cancel)
        if not thumbnail.ok:
            return self._abort(
                UploadStage.UPLOAD_THUMBNAIL, thumbnail.error, main_file, thumbnail_file
            )
        image.thumbnail = thumbnail.url

        try:
            width, height = read_image_size(main_file)
        except Exception as exc:
            return self._abort(UploadStage.FINALIZE, exc, main_file, thumbnail_file)
        image.width = width
        image.height = height

        self._remove_files(main_file, thumbnail_file)
        logger.info("Stored image %s with thumbnail %s", main.url, thumbnail.url)
        return UploadSuccess(
            main_url=main.url,
            thumbnail_url=thumbnail.url,
            width=width,
            height=height,
        )

    def _abort(
        self,
        stage: UploadStage,
        cause: BaseException | str | None,
        *paths: Path,
    ) -> UploadFailure:
        if isinstance(cause, BaseException):
            logger.error("Image upload failed at %s", stage.value, exc_info=cause)
            message = str(cause) or cause.__class__.__name__
        else:
            logger.error("Image upload failed at %s: %s", stage.value, cause)
            message = cause or "unknown error"
        self._remove_files(*paths)
        return UploadFailure(stage=stage, cause=message)

    @staticmethod
    def _remove_files(*paths: Path) -> None:
        for path in paths:
            try:
                path.unlink(missing_ok=True)
            except OSError:
                logger.warning("Could not remove temporary file %s", path)
