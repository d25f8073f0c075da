"""Change propagation package."""

from splitsmart.sync.coordinator import ChangeCoordinator

__all__ = ["ChangeCoordinator"]
