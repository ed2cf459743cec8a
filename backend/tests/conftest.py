import importlib
import os
import shutil
import sys
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from PIL import Image as PILImage

# Ensure project root is on sys.path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from image_uploader.core.config import get_settings
from image_uploader.db import session as db_session
from image_uploader.schemas import StoreConfig, StoreResult
from image_uploader.services import storage as storage_service
from image_uploader.services.uploader import ImageUploader


class DummyStore(storage_service.ObjectStoreClient):
    """Records uploaded bytes; calls listed in ``fail_on`` (1-based) report a store error."""

    def __init__(self, fail_on: tuple[int, ...] = ()) -> None:  # type: ignore[super-init-not-called]
        self.config = StoreConfig(bucket="dummy", public_base_url="https://cdn.example.com")
        self.bucket = "dummy"
        self.fail_on = set(fail_on)
        self.calls = 0
        self.uploads: dict[str, bytes] = {}

    def upload(self, key, local_path, *, wait=None, cancel=None):  # type: ignore[override]
        self.calls += 1
        if self.calls in self.fail_on:
            return StoreResult(key=key, error="simulated store error")
        self.uploads[key] = Path(local_path).read_bytes()
        return StoreResult(key=key, url=self.object_url(key))

    def delete_object(self, key):  # type: ignore[override]
        self.uploads.pop(key, None)


class FileSource:
    """Upload source backed by a file on disk."""

    def __init__(self, path: Path, size: int | None = None) -> None:
        self.path = path
        self._size = size
        self.moved_to: Path | None = None

    @property
    def size(self) -> int:
        return self._size if self._size is not None else self.path.stat().st_size

    @property
    def extension(self) -> str:
        return self.path.suffix.lstrip(".")

    def move_to(self, destination: Path) -> None:
        shutil.move(self.path, destination)
        self.moved_to = destination


class Record:
    def __init__(self) -> None:
        self.main: str | None = None
        self.thumbnail: str | None = None
        self.width: int | None = None
        self.height: int | None = None


def write_image(
    path: Path,
    size: tuple[int, int] = (80, 60),
    *,
    orientation: int | None = None,
    halves: str = "horizontal",
) -> Path:
    """Write a two-colour image: red first half, blue second half."""
    width, height = size
    image = PILImage.new("RGB", size, (0, 0, 255))
    if halves == "horizontal":
        image.paste((255, 0, 0), (0, 0, width, height // 2))
    else:
        image.paste((255, 0, 0), (0, 0, width // 2, height))

    options = {}
    if orientation is not None:
        exif = PILImage.Exif()
        exif[274] = orientation
        options["exif"] = exif.tobytes()
    if path.suffix.lower() in (".jpg", ".jpeg"):
        options["quality"] = 95
    image.save(path, **options)
    return path


@pytest.fixture(scope="session", autouse=True)
def configure_environment(tmp_path_factory):
    workdir = tmp_path_factory.mktemp("env")
    os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{workdir / 'test.db'}"
    os.environ["DEBUG"] = "false"
    os.environ["S3_ACCESS_KEY"] = "test"
    os.environ["S3_SECRET_KEY"] = "test"
    os.environ["S3_BUCKET_IMAGES"] = "test-bucket"
    os.environ["STORAGE_BACKEND"] = "local"
    os.environ["LOCAL_STORAGE_DIR"] = str(workdir / "storage")
    os.environ["PUBLIC_DIR"] = str(workdir / "public")
    get_settings.cache_clear()
    db_session.reset_session_factory()
    storage_service.reset_object_store()


@pytest.fixture
def dummy_store() -> DummyStore:
    return DummyStore()


@pytest.fixture
def uploader(dummy_store, tmp_path) -> ImageUploader:
    return ImageUploader(dummy_store, tmp_path / "public")


@pytest.fixture(scope="session")
def app_instance(configure_environment):
    from image_uploader import main as app_module

    importlib.reload(app_module)
    return app_module.app


@pytest_asyncio.fixture
async def database(app_instance):
    db_session.reset_session_factory()
    await db_session.init_models()
    yield
    engine = db_session.get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(db_session.Base.metadata.drop_all)
    await engine.dispose()
    db_session.reset_session_factory()


@pytest_asyncio.fixture
async def client(app_instance, database, dummy_store, tmp_path):
    # Mimic the lifespan, which ASGITransport does not run
    app_instance.state.image_uploader = ImageUploader(dummy_store, tmp_path / "public")
    transport = ASGITransport(app=app_instance)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
