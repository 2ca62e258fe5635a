from .client import QueueClient, get_http_client, request_with_retry
from .errors import QueueClientError, QueueClientNetworkError, QueueClientStatusError

__all__ = [
    "QueueClient",
    "get_http_client",
    "request_with_retry",
    "QueueClientError",
    "QueueClientNetworkError",
    "QueueClientStatusError",
]
