"""User model (credential store)."""

import enum

from sqlalchemy import Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.db.base import Base
from storefront.models.mixins import UUIDPrimaryKeyMixin, TimestampMixin, str_enum

INITIAL_TOKEN_VERSION = 1


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    RIDER = "rider"


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    BLOCKED = "blocked"


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "users"

    phone: Mapped[str] = mapped_column(String(15), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(str_enum(UserRole), default=UserRole.CUSTOMER, nullable=False)
    status: Mapped[UserStatus] = mapped_column(str_enum(UserStatus), default=UserStatus.ACTIVE, nullable=False)
    # Bumped to invalidate every outstanding token at once; NULL reads as the initial value.
    token_version: Mapped[int | None] = mapped_column(
        Integer, default=INITIAL_TOKEN_VERSION, server_default=text("1")
    )
    display_name: Mapped[str | None] = mapped_column(String(80))
    full_name: Mapped[str | None] = mapped_column(String(120))
    # Denormalized copy of the default address, written only by services.addresses.
    primary_address_json: Mapped[str | None] = mapped_column(Text)

    addresses = relationship("Address", back_populates="user", cascade="all, delete-orphan")
    orders = relationship("Order", back_populates="user")

    @property
    def effective_token_version(self) -> int:
        return self.token_version or INITIAL_TOKEN_VERSION

    def __repr__(self) -> str:
        return f"<User {self.phone} role={self.role}>"
