"""Backend services."""

from .changes import ChangeBroker, change_broker

__all__ = ["ChangeBroker", "change_broker"]
