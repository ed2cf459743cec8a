from contextlib import asynccontextmanager

from fastapi import FastAPI

from image_uploader.api.routers import images as images_router
from image_uploader.core.config import get_settings
from image_uploader.core.logging import configure_logging
from image_uploader.db.session import init_models
from image_uploader.services.storage import get_object_store
from image_uploader.services.uploader import ImageUploader


def build_uploader() -> ImageUploader:
    settings = get_settings()
    return ImageUploader(
        get_object_store(),
        settings.public_path,
        max_upload_bytes=settings.max_upload_bytes,
        thumbnail_max_size=settings.thumbnail_max_size,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.image_uploader = build_uploader()
    await init_models()
    yield


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)
    app = FastAPI(
        debug=settings.debug,
        title="Chat Image Uploader",
        lifespan=lifespan,
    )

    app.include_router(images_router.router)

    return app


app = create_app()
