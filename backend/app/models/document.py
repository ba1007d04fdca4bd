"""Document ORM model."""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, CreatedAtMixin, IdMixin


class Document(Base, IdMixin, CreatedAtMixin):
    """Plain extracted text for one uploaded source document."""

    __tablename__ = "documents"

    owner: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    filename: Mapped[str] = mapped_column(String(512), nullable=False)
    full_text: Mapped[str] = mapped_column(Text, default="", nullable=False)
