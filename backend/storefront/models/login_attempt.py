"""Failed-login counters, one row per client key."""

from sqlalchemy import Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from storefront.db.base import Base


class LoginAttempt(Base):
    __tablename__ = "login_attempts"

    key: Mapped[str] = mapped_column(String(80), primary_key=True)
    count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # epoch seconds
    reset_at: Mapped[float] = mapped_column(Float, nullable=False)
    blocked_until: Mapped[float | None] = mapped_column(Float)

    def __repr__(self) -> str:
        return f"<LoginAttempt {self.key} count={self.count}>"
