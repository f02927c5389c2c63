"""
Module: ledger_kernel.models.sequence
Responsibility: Named counter rows backing transaction numbering.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is a named sequence with its last allocated value.  Rows are
    locked with SELECT ... FOR UPDATE while being incremented.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
