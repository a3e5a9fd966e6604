from .coordinator import PublishCoordinator, PublishReceipt
from .retry import RetryEvent, RetryPolicy

__all__ = ["PublishCoordinator", "PublishReceipt", "RetryPolicy", "RetryEvent"]
