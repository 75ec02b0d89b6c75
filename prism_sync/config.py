"""
Configuration for the Prism Element sync engine.

Reads from environment variables with sensible defaults.
"""

import os
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings loaded from environment."""

    # HTTP transport
    verify_ssl: bool = os.getenv("PRISM_SYNC_VERIFY_SSL", "false").lower() == "true"
    connect_timeout: int = int(os.getenv("PRISM_SYNC_CONNECT_TIMEOUT", "10"))
    read_timeout: int = int(os.getenv("PRISM_SYNC_READ_TIMEOUT", "60"))

    # Prism Element listens on 9440 unless the cloud URL says otherwise
    default_port: int = int(os.getenv("PRISM_SYNC_DEFAULT_PORT", "9440"))

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        env_prefix = "PRISM_SYNC_"


settings = Settings()

# REST roots
STANDARD_API = "/PrismGateway/services/rest/v1/"
V2_API = "/api/nutanix/v2.0/"

# Task polling (seconds / attempts)
TASK_POLL_INTERVAL = int(os.getenv("PRISM_SYNC_TASK_POLL_INTERVAL", "10"))
TASK_POLL_ATTEMPTS = int(os.getenv("PRISM_SYNC_TASK_POLL_ATTEMPTS", "350"))

# VM ready polling after power on
SERVER_READY_POLL_INTERVAL = int(os.getenv("PRISM_SYNC_SERVER_READY_POLL_INTERVAL", "20"))
SERVER_READY_POLL_ATTEMPTS = int(os.getenv("PRISM_SYNC_SERVER_READY_POLL_ATTEMPTS", "60"))

# Catalog codes the reconcilers look up
HOST_SERVER_TYPE_CODE = "nutanixMetalHypervisor"
UNMANAGED_SERVER_TYPE_CODE = "nutanixUnmanaged"
FALLBACK_PLAN_CODE = "internal-custom-nutanix"
PROVISION_TYPE_CODE = "nutanix"
NETWORK_TYPE_VLAN = "nutanixVlan"
NETWORK_TYPE_MANAGED_VLAN = "nutanixManagedVlan"
POOL_TYPE_CODE = "nutanix"
MANAGEMENT_SHARE_NAME = "nutanixmanagementshare"

ONE_MEGABYTE = 1024 * 1024
