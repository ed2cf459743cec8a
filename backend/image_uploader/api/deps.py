from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from image_uploader.db.session import get_session_factory
from image_uploader.services.uploader import ImageUploader


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    session_factory = get_session_factory()
    async with session_factory() as session:
        yield session


def get_image_uploader(request: Request) -> ImageUploader:
    return request.app.state.image_uploader
