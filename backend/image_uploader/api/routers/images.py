import asyncio
import threading

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from image_uploader.api.deps import get_db, get_image_uploader
from image_uploader.api.upload_source import UploadedFileSource
from image_uploader.models import Image
from image_uploader.schemas import ImageRead, UploadStage
from image_uploader.services.uploader import ImageUploader

router = APIRouter(prefix="/images", tags=["images"])

_FAILURE_STATUS = {
    UploadStage.VALIDATE: 413,
    UploadStage.STAGE: 422,
    UploadStage.UPLOAD_MAIN: 502,
    UploadStage.RESIZE: 500,
    UploadStage.UPLOAD_THUMBNAIL: 502,
    UploadStage.FINALIZE: 500,
}


@router.post("/", response_model=ImageRead, status_code=status.HTTP_201_CREATED)
async def upload_image(
    file: UploadFile = File(...),
    session: AsyncSession = Depends(get_db),
    uploader: ImageUploader = Depends(get_image_uploader),
) -> Image:
    source = UploadedFileSource(file)
    image = Image()
    cancel = threading.Event()
    try:
        outcome = await asyncio.to_thread(uploader.upload, source, image, cancel)
    except asyncio.CancelledError:
        # The worker thread keeps running; stop it at its next store poll.
        cancel.set()
        raise

    if not outcome:
        status_code = _FAILURE_STATUS[outcome.stage]
        if outcome.stage is UploadStage.VALIDATE and source.size <= uploader.max_upload_bytes:
            status_code = status.HTTP_415_UNSUPPORTED_MEDIA_TYPE
        raise HTTPException(
            status_code=status_code,
            detail={"stage": outcome.stage.value, "message": outcome.cause},
        )

    session.add(image)
    await session.commit()
    await session.refresh(image)
    return image


@router.get("/{image_id}", response_model=ImageRead)
async def get_image(
    image_id: str,
    session: AsyncSession = Depends(get_db),
) -> Image:
    image = await session.get(Image, image_id)
    if not image:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found")
    return image
