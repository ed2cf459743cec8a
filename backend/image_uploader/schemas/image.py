from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ImageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    main: str | None = None
    thumbnail: str | None = None
    width: int | None = None
    height: int | None = None
    created_at: datetime
