"""Key/value overrides for the pricing policy."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from storefront.db.base import Base


class AdminConfig(Base):
    __tablename__ = "admin_config"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    value: Mapped[str | None] = mapped_column(String(255))
