"""Reachability checks run before a refresh touches the Prism API"""

import logging
import socket
import time
from typing import Optional
from urllib.parse import urlparse

from prism_sync.config import settings

logger = logging.getLogger(__name__)


def check_dns_resolution(hostname: str) -> dict:
    """Resolve the Prism hostname."""
    try:
        start = time.time()
        addresses = socket.getaddrinfo(hostname, None)
        elapsed = (time.time() - start) * 1000
        return {
            'success': True,
            'resolved_ips': sorted({addr[4][0] for addr in addresses}),
            'response_time_ms': round(elapsed, 2),
            'message': f'{hostname} resolved to {len(addresses)} address(es)'
        }
    except socket.gaierror as e:
        return {
            'success': False,
            'error': str(e),
            'message': f'{hostname} did not resolve'
        }


def check_port_connectivity(host: str, port: int, timeout: int = 5) -> dict:
    """Open a TCP connection to the Prism API port."""
    try:
        start = time.time()
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.settimeout(timeout)
            result = sock.connect_ex((host, port))
        elapsed = (time.time() - start) * 1000
    except OSError as e:
        return {
            'success': False,
            'error': str(e),
            'message': f'{host}:{port} connection failed'
        }

    if result != 0:
        return {
            'success': False,
            'error_code': result,
            'message': f'{host}:{port} refused or filtered'
        }
    return {
        'success': True,
        'response_time_ms': round(elapsed, 2),
        'message': f'{host}:{port} accepting connections'
    }


def split_host_port(api_url: Optional[str]):
    """Host and port of a cloud API URL; bare hosts use the Prism default port."""
    if not api_url:
        return None, settings.default_port
    parsed = urlparse(api_url if "://" in api_url else f"https://{api_url}")
    return parsed.hostname, parsed.port or settings.default_port


def check_host_reachable(api_url: Optional[str], timeout: int = 5) -> bool:
    """True when the API host resolves and its port accepts a TCP connection."""
    host, port = split_host_port(api_url)
    if not host:
        return False

    dns_result = check_dns_resolution(host)
    if not dns_result['success']:
        logger.debug(dns_result['message'])
        return False

    port_result = check_port_connectivity(host, port, timeout)
    if not port_result['success']:
        logger.debug(port_result['message'])
    return port_result['success']
