"""
Branch configuration owned by the merchant platform.

The reservation engine only reads this row (through BranchDirectory);
`reservation_settings` is validated into a BranchReservationPolicy at the
policy-store boundary rather than at each call site.
"""

from sqlalchemy import Column, Integer, String, JSON

from reservation_engine.db.base import Base, TimestampMixin


class Branch(Base, TimestampMixin):
    __tablename__ = "branches"

    id = Column(Integer, primary_key=True, index=True)
    merchant_id = Column(Integer, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    timezone = Column(String(64), nullable=False, default="UTC")
    # {"monday": {"open": "11:00", "close": "22:00", "is_closed": false}, ...}
    operating_hours = Column(JSON, nullable=False, default=dict)
    reservation_settings = Column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<Branch(id={self.id}, name={self.name})>"
