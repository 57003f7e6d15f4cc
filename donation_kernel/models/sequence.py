"""Named counter rows; written only by SequenceService under FOR UPDATE."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from donation_kernel.db.base import Base


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), unique=True)
    current_value: Mapped[int] = mapped_column(default=0)
