import os
import shutil
from pathlib import Path

from fastapi import UploadFile


class UploadedFileSource:
    """Adapts a multipart ``UploadFile`` to the pipeline's upload source."""

    def __init__(self, upload: UploadFile) -> None:
        self._upload = upload
        self._moved = False

    @property
    def size(self) -> int:
        if self._upload.size is not None:
            return self._upload.size
        fileobj = self._upload.file
        position = fileobj.tell()
        fileobj.seek(0, os.SEEK_END)
        size = fileobj.tell()
        fileobj.seek(position)
        return size

    @property
    def extension(self) -> str:
        return Path(self._upload.filename or "").suffix.lstrip(".").lower()

    def move_to(self, destination: Path) -> None:
        if self._moved:
            raise RuntimeError(f"{self._upload.filename!r} was already moved")
        self._moved = True
        self._upload.file.seek(0)
        with destination.open("wb") as target:
            shutil.copyfileobj(self._upload.file, target)
