"""
Contracts for the collaborators the reservation engine consumes.
Allows swapping implementations without changing business logic.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from reservation_engine.schemas.policy import BranchConfig


class CustomerRecord(BaseModel):
    id: int
    user_id: int
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


class NotificationDispatcher(ABC):
    """
    Outbound notification channel (push, SMS, WhatsApp, email).

    Called after commit from the event bus. Implementations may raise; the
    bus logs and counts the failure and the booking transition stands.
    """

    @abstractmethod
    async def notify(
        self,
        user_id: int,
        category: str,
        title: str,
        message: str,
        data: dict[str, Any],
    ) -> None:
        pass


class CustomerDirectory(ABC):
    @abstractmethod
    async def get_customer(self, customer_id: int) -> Optional[CustomerRecord]:
        """Return the customer, or None when unknown."""
        pass


class BranchDirectory(ABC):
    @abstractmethod
    async def get_branch(self, db: AsyncSession, branch_id: int) -> Optional[BranchConfig]:
        """
        Return the branch configuration, or None when unknown.

        Receives the caller's session so the read joins the current
        transaction.
        """
        pass
