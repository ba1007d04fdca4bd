"""Document request/response schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class DocumentCreate(BaseModel):
    """Plain-text document registration payload."""

    owner: str = Field(min_length=1)
    filename: str = Field(min_length=1)
    full_text: str


class DocumentRead(BaseModel):
    """Serialized document metadata."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    owner: str
    filename: str
    created_at: datetime
