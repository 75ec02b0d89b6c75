"""Prism Element REST client, response models and per-cluster service"""

from prism_sync.api.client import ApiResult, PrismApiClient, RequestOptions
from prism_sync.api.service import ListResult, PrismApiService, TaskResult

__all__ = [
    "ApiResult",
    "ListResult",
    "PrismApiClient",
    "PrismApiService",
    "RequestOptions",
    "TaskResult",
]
