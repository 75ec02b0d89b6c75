"""
Prism Element REST client

Thin transport wrapper around requests. Every call returns an ApiResult
envelope instead of raising, so reconcilers can decide per entity type how
to react to transport or auth failures.
"""

import base64
import logging
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlsplit

import requests
import urllib3
from pydantic import BaseModel

from prism_sync.config import settings
from prism_sync.errors import PrismConfigError, map_prism_error
from prism_sync.models import Cloud
from prism_sync.utils import _safe_json_parse

logger = logging.getLogger(__name__)


class RequestOptions(BaseModel):
    """Per-request extras."""
    headers: Dict[str, str] = {}
    query_params: Dict[str, Any] = {}
    body: Optional[Any] = None


class ApiResult(BaseModel):
    """Decoded response envelope."""
    success: bool = False
    error: bool = False
    data: Any = None
    status_code: Optional[int] = None
    error_code: Optional[str] = None
    msg: Optional[str] = None


def build_headers(username: Optional[str], password: Optional[str], headers: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """
    JSON headers plus HTTP Basic authorization.

    Args:
        username: Prism user
        password: Prism password
        headers: Optional headers to merge in first

    Returns:
        dict of request headers
    """
    rtn = dict(headers or {})
    rtn["Content-Type"] = "application/json"
    rtn["Accept"] = "application/json"
    if username and password:
        creds = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
        rtn["Authorization"] = f"Basic {creds}"
    return rtn


def get_prism_api_url(cloud: Cloud) -> str:
    """
    Normalize the cloud's API URL to scheme://host:port.

    A bare host gets https and the Prism Element port.

    Raises:
        PrismConfigError: If no URL is configured
    """
    api_url = cloud.api_url or cloud.get_config_property("apiUrl")
    if not api_url:
        raise PrismConfigError("no nutanix api url specified")
    if api_url.startswith("http"):
        parts = urlsplit(api_url)
        return f"{parts.scheme}://{parts.netloc}"
    return f"https://{api_url}:{settings.default_port}"


def get_prism_credentials(cloud: Cloud) -> Tuple[str, str]:
    """
    Resolve username/password from the cloud or its config map.

    Raises:
        PrismConfigError: If either is missing
    """
    username = cloud.username or cloud.get_config_property("username")
    if not username:
        raise PrismConfigError("no nutanix username specified")
    password = cloud.password or cloud.get_config_property("password")
    if not password:
        raise PrismConfigError("no nutanix password specified")
    return username, password


class PrismApiClient:
    """
    HTTP client shared by every call against one or more clusters.
    """

    def __init__(self, session: Optional[requests.Session] = None, verify_ssl: Optional[bool] = None,
                 timeout: Optional[Tuple[int, int]] = None):
        """
        Args:
            session: Optional requests session (one is created if omitted)
            verify_ssl: Whether to verify SSL certificates (default from settings, False for self-signed)
            timeout: Tuple of (connect_timeout, read_timeout)
        """
        self.session = session or requests.Session()
        self.verify_ssl = settings.verify_ssl if verify_ssl is None else verify_ssl
        self.timeout = timeout or (settings.connect_timeout, settings.read_timeout)
        if not self.verify_ssl:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def call_json_api(
        self,
        base_url: str,
        path: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        options: Optional[RequestOptions] = None,
        http_method: str = "GET",
    ) -> ApiResult:
        """
        Issue one JSON request.

        Args:
            base_url: scheme://host:port of the cluster
            path: REST path including the versioned root
            username: Prism user for Basic auth
            password: Prism password for Basic auth
            options: Extra headers, query params and JSON body
            http_method: GET, POST, PUT or DELETE

        Returns:
            ApiResult; never raises for HTTP or connection failures
        """
        options = options or RequestOptions()
        url = f"{base_url.rstrip('/')}{path}"
        headers = build_headers(username, password, options.headers)

        try:
            response = self.session.request(
                http_method.upper(),
                url,
                headers=headers,
                params=options.query_params or None,
                json=options.body,
                verify=self.verify_ssl,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.warning(f"{http_method} {url} timed out: {e}")
            return ApiResult(success=False, error=True, error_code="TIMEOUT", msg=str(e))
        except requests.exceptions.RequestException as e:
            logger.warning(f"{http_method} {url} failed: {e}")
            return ApiResult(success=False, error=True, error_code="CONNECTION", msg=str(e))

        data = _safe_json_parse(response) if response.content else None
        if 200 <= response.status_code < 300:
            return ApiResult(success=True, data=data, status_code=response.status_code)

        error_info = map_prism_error(response.status_code, data)
        logger.debug(f"{http_method} {url} returned {response.status_code}: {error_info['code']}")
        return ApiResult(
            success=False,
            error=True,
            data=data,
            status_code=response.status_code,
            error_code=error_info["code"],
            msg=error_info["message"],
        )
