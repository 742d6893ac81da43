import enum
from sqlalchemy import Column, Integer, ForeignKey, DateTime, Numeric, Enum, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from groupsplit.db.session import Base

class SettlementStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"

class Settlement(Base):
    """
    A directed obligation from_user -> to_user inside one group.

    PENDING rows are the matcher's current answer and get replaced on every
    recompute. PAID rows are history and are never touched again.
    """
    __tablename__ = "settlements"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (Index("ix_settlements_group_status", "group_id", "status"),)

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(Integer, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False)
    from_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    to_user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(
        Enum(SettlementStatus, name="settlement_status"),
        nullable=False,
        default=SettlementStatus.PENDING,
        server_default=SettlementStatus.PENDING.value,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    paid_at = Column(DateTime(timezone=True), nullable=True)

    group = relationship("Group", back_populates="settlements")
