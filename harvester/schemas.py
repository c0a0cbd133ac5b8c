from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Summary(BaseModel):
    last_24h: Optional[float] = None
    last_7d: Optional[float] = None
    last_30d: Optional[float] = None
    last_90d: Optional[float] = None
    last_ever: Optional[float] = None


class PriceEntry(BaseModel):
    steam: Summary


class CursorState(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    last_index: int = Field(default=0, ge=0, alias="lastIndex")
