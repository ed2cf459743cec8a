from image_uploader.schemas.image import ImageRead
from image_uploader.schemas.upload import (
    StoreConfig,
    StoreResult,
    UploadFailure,
    UploadOutcome,
    UploadStage,
    UploadSuccess,
    WaitPolicy,
)

__all__ = [
    "ImageRead",
    "StoreConfig",
    "StoreResult",
    "UploadFailure",
    "UploadOutcome",
    "UploadStage",
    "UploadSuccess",
    "WaitPolicy",
]
