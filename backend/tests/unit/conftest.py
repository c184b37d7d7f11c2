# backend/tests/unit/conftest.py
"""Conftest for unit tests - hypervisor-free builders and mocks."""
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import MagicMock

from labprovider.models.inventory import Snapshot
from labprovider.schemas.feature_config import WireGuardConfig

SERVER_PUBLIC_KEY = "xTIBA5rboUvnH4htodjb6e697QjLERt1NAB4mZqp8Dg="


@pytest.fixture
def make_snapshot():
    """Build a Snapshot created ``day`` days after 2024-01-01."""
    epoch = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def _make(name, day, children=None):
        return Snapshot(name=name, created=epoch + timedelta(days=day), children=children or [])
    return _make


@pytest.fixture
def wireguard_config():
    return WireGuardConfig(
        enabled=True,
        server_public_key=SERVER_PUBLIC_KEY,
        server_endpoint="vpn.example.com:51820",
        allowed_ips=["10.200.0.0/24", "192.168.50.0/24"],
        mtu=1420,
        keepalive=25,
        client_addresses=["10.200.0.2/32", "10.200.0.3/32"],
        auto_register_peers=True,
    )


@pytest.fixture
def mock_opnsense():
    """Mock OPNsense API for WireGuard service tests."""
    return MagicMock()


@pytest.fixture
def server_public_key():
    return SERVER_PUBLIC_KEY
