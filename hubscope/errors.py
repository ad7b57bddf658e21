"""Exception types raised by hubscope."""

from __future__ import annotations


class HubscopeError(Exception):
    """Base class for all hubscope errors."""


class StoreUnavailableError(HubscopeError):
    """Raised by a store when its backing storage cannot be reached."""


class InstanceNotFoundError(HubscopeError):
    """Raised by a store when the requested instance does not exist."""

    def __init__(self, instance_id: str) -> None:
        super().__init__(f"Instance {instance_id} doesn't exist")
        self.instance_id = instance_id
