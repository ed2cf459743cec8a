from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class WaitPolicy(BaseModel):
    """Polling policy used while waiting for an uploaded object to become readable."""

    model_config = ConfigDict(frozen=True)

    delay_seconds: float = Field(default=5.0, ge=0)
    max_attempts: int = Field(default=20, ge=1)


class StoreConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    bucket: str = Field(..., min_length=1)
    region: str | None = None
    access_key: str | None = None
    secret_key: str | None = None
    endpoint_url: str | None = None
    public_base_url: str | None = None
    acl: str = "public-read"
    wait: WaitPolicy = WaitPolicy()


class StoreResult(BaseModel):
    key: str
    url: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return bool(self.url) and self.error is None


class UploadStage(str, Enum):
    VALIDATE = "validate"
    STAGE = "stage"
    UPLOAD_MAIN = "upload_main"
    RESIZE = "resize"
    UPLOAD_THUMBNAIL = "upload_thumbnail"
    FINALIZE = "finalize"


class UploadSuccess(BaseModel):
    ok: Literal[True] = True
    main_url: str
    thumbnail_url: str
    width: int
    height: int

    def __bool__(self) -> bool:
        return True


class UploadFailure(BaseModel):
    ok: Literal[False] = False
    stage: UploadStage
    cause: str

    def __bool__(self) -> bool:
        return False


UploadOutcome = UploadSuccess | UploadFailure
