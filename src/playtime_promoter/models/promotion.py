"""SQLAlchemy model for completed promotions."""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Integer, SmallInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from playtime_promoter.db.session import Base


class PromotionRecordRow(Base):
    """A confirmed (user, rank) promotion. Rows are only ever inserted."""

    __tablename__ = "promotion_records"
    __table_args__ = (UniqueConstraint("user_id", "applied_rank", name="uq_promotion_user_rank"),)

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    user_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    applied_rank: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
