"""
Default collaborator adapters.

Deployments embedded in the wider merchant platform replace these with
adapters over the real customer and notification services.
"""

from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from reservation_engine.core.errors import InternalError
from reservation_engine.core.logging import get_logger
from reservation_engine.models.branch import Branch
from reservation_engine.schemas.policy import BranchConfig
from reservation_engine.services.interfaces import (
    BranchDirectory,
    CustomerDirectory,
    CustomerRecord,
    NotificationDispatcher,
)

logger = get_logger(__name__)


class SqlBranchDirectory(BranchDirectory):
    """Reads branches from the `branches` table and validates their settings."""

    async def get_branch(self, db: AsyncSession, branch_id: int) -> Optional[BranchConfig]:
        result = await db.execute(select(Branch).where(Branch.id == branch_id))
        branch = result.scalar_one_or_none()
        if branch is None:
            return None

        try:
            return BranchConfig(
                id=branch.id,
                merchant_id=branch.merchant_id,
                name=branch.name,
                timezone=branch.timezone or "UTC",
                operating_hours=branch.operating_hours or {},
                reservation_policy=branch.reservation_settings or {},
            )
        except ValidationError as e:
            logger.error("branch_settings_invalid", branch_id=branch_id, errors=e.errors(include_url=False))
            raise InternalError(
                f"Branch {branch_id} has invalid reservation settings",
                details={"branch_id": branch_id},
            ) from e


class PassthroughCustomerDirectory(CustomerDirectory):
    """Accepts every customer id and uses it as the notification user id."""

    async def get_customer(self, customer_id: int) -> Optional[CustomerRecord]:
        return CustomerRecord(id=customer_id, user_id=customer_id)


class LoggingNotificationDispatcher(NotificationDispatcher):
    async def notify(
        self,
        user_id: int,
        category: str,
        title: str,
        message: str,
        data: dict[str, Any],
    ) -> None:
        logger.info(
            "notification_dispatched",
            user_id=user_id,
            category=category,
            title=title,
            booking_id=data.get("booking_id"),
        )
