# backend/labprovider/schemas/feature_config.py
"""
User-facing feature configuration.

These are non-sensitive settings that customize which calendar is watched,
which users map to which VMs, and how WireGuard profiles are built. They are
loaded once per run from a YAML file and can be edited without redeploying.
"""
import json
import os
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field

from labprovider.config import ConfigurationError


class CalendarConfig(BaseModel):
    calendar_id: str = ""
    service_account_path: str = ""

    def load_service_account_info(self) -> Dict[str, Any]:
        """Read the service account JSON.

        The SERVICE_ACCOUNT_PATH environment variable, if set, overrides the
        configured path.
        """
        path = os.environ.get("SERVICE_ACCOUNT_PATH") or self.service_account_path
        if not path:
            raise ConfigurationError("service_account_path is not configured")
        try:
            with open(path) as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"failed to read service account file: {e}") from e


class UserVMPair(BaseModel):
    """A user and all of their configured VMs."""
    user: str
    vms: List[str] = Field(default_factory=list)


class ESXiConfig(BaseModel):
    user_vm_mappings: Dict[str, List[str]] = Field(default_factory=dict)
    # None means "revert to the latest snapshot"
    snapshot_name: Optional[str] = None

    def user_vm_pairs(self) -> List[UserVMPair]:
        """User-VM pairs sorted by username for deterministic iteration."""
        return [
            UserVMPair(user=user, vms=list(self.user_vm_mappings[user]))
            for user in sorted(self.user_vm_mappings)
        ]


class WireGuardConfig(BaseModel):
    enabled: bool = False
    server_public_key: str = ""
    server_endpoint: str = ""
    server_tunnel_network: str = ""
    allowed_ips: List[str] = Field(default_factory=list)
    mtu: int = 0
    client_addresses: List[str] = Field(default_factory=list)
    keepalive: int = 0
    # OPNsense API; credentials are normally supplied through the environment
    opnsense_url: str = ""
    opnsense_api_key: str = ""
    opnsense_api_secret: str = ""
    opnsense_insecure: bool = False
    auto_register_peers: bool = False


class FeatureConfig(BaseModel):
    calendar: CalendarConfig = Field(default_factory=CalendarConfig)
    esxi: ESXiConfig = Field(default_factory=ESXiConfig)
    wireguard: WireGuardConfig = Field(default_factory=WireGuardConfig)


def load_feature_config(path: str) -> FeatureConfig:
    """Load feature configuration from a YAML file.

    Raises:
        ConfigurationError: If the file is missing, not valid YAML, or does not
            match the expected structure
    """
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(f"failed to load feature config: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"failed to parse feature config: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError("failed to load feature config: top level must be a mapping")

    try:
        return FeatureConfig.model_validate(data)
    except ValueError as e:
        raise ConfigurationError(f"invalid feature config: {e}") from e
