"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .collaborators import BranchDirectory, CustomerDirectory, CustomerRecord, NotificationDispatcher

__all__ = ['BranchDirectory', 'CustomerDirectory', 'CustomerRecord', 'NotificationDispatcher']
