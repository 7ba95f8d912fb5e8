"""
Outbound REST API clients
"""
from .base import BaseAPIClient, APIResponse, APIError, TransientAPIError

__all__ = [
    "BaseAPIClient",
    "APIResponse",
    "APIError",
    "TransientAPIError",
]
