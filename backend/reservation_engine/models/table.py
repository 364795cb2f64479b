"""
Physical seating unit at a branch.

Key design decisions:
- `status` mirrors the floor (occupied while a party is seated); availability
  for future windows is computed from bookings, never from this column
- `version` is bumped on every assignment so two concurrent claims of the
  same table cannot both succeed (compare-and-set, see TableAssignmentPolicy)
- Unique table number per branch
"""

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, UniqueConstraint, CheckConstraint, Index

from reservation_engine.db.base import Base, TimestampMixin


class TableStatus:
    AVAILABLE = "available"
    RESERVED = "reserved"
    OCCUPIED = "occupied"
    MAINTENANCE = "maintenance"


class Table(Base, TimestampMixin):
    __tablename__ = "tables"

    id = Column(Integer, primary_key=True, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False, index=True)
    table_number = Column(String(20), nullable=False)
    capacity = Column(Integer, nullable=False)
    location_type = Column(String(20), nullable=False, default="indoor")
    table_type = Column(String(20), nullable=False, default="standard")
    status = Column(String(20), nullable=False, default=TableStatus.AVAILABLE)
    is_active = Column(Boolean, nullable=False, default=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint("branch_id", "table_number", name="uq_branch_table_number"),
        CheckConstraint("capacity >= 1", name="check_table_capacity_positive"),
        CheckConstraint(
            "status IN ('available', 'reserved', 'occupied', 'maintenance')",
            name="check_table_status",
        ),
        Index("ix_tables_branch_active_capacity", "branch_id", "is_active", "capacity"),
    )

    def __repr__(self) -> str:
        return f"<Table(id={self.id}, number={self.table_number}, capacity={self.capacity})>"
