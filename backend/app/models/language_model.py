"""Completion model catalog entry."""

from sqlalchemy import Boolean, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, CreatedAtMixin, IdMixin


class LanguageModel(Base, IdMixin, CreatedAtMixin):
    """Pricing and capability metadata for a `provider/name` model identifier."""

    __tablename__ = "language_models"

    identifier: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    supports_json_mode: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    price_in: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    price_out: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
