"""Services for zone resolution, recipient selection, dispatch and token upkeep."""
from .timezones import TimeWindowResolver
from .recipients import RecipientSelector
from .dispatcher import BatchDispatcher
from .reconciler import FailureReconciler
from .tokens import TokenLifecycleManager

__all__ = ["TimeWindowResolver", "RecipientSelector", "BatchDispatcher", "FailureReconciler", "TokenLifecycleManager"]
