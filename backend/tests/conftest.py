# backend/tests/conftest.py
from datetime import datetime, timezone

import pytest
from unittest.mock import MagicMock, patch
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from labprovider.main import app
from labprovider.database import get_db
from labprovider.api.deps import get_inventory_client
from labprovider.models import Base, Machine, MachineInventory, Snapshot


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def sample_inventory():
    """Two VMs; lab-vm-01 has a two level snapshot tree."""
    base = Snapshot(
        name="base",
        created=datetime(2024, 1, 1, tzinfo=timezone.utc),
        state="poweredOff",
        children=[
            Snapshot(
                name="clean-install",
                created=datetime(2024, 2, 1, tzinfo=timezone.utc),
                state="poweredOff",
            ),
        ],
    )
    return MachineInventory(
        host_name="VMware ESXi 8.0.2",
        machines=[
            Machine(name="lab-vm-01", snapshots=[base]),
            Machine(name="lab-vm-02"),
        ],
    )


@pytest.fixture
def mock_inventory_client(sample_inventory):
    """Mock hypervisor client for API tests."""
    mock_client = MagicMock()
    mock_client.list_vm_snapshots.return_value = sample_inventory
    return mock_client


@pytest.fixture
def client(db_session, mock_inventory_client):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_inventory_client] = lambda: mock_inventory_client

    # Keep startup away from the real hypervisor and database file
    with patch("labprovider.main.sync_inventory_on_startup"), \
         patch("labprovider.main.configure_logging"), \
         patch("labprovider.database.init_db"):
        with TestClient(app) as test_client:
            yield test_client
    app.dependency_overrides.clear()


class FakeSMTP:
    """In-memory stand-in for smtplib.SMTP."""

    def __init__(self, outbox, host, port, timeout=None):
        self.outbox = outbox
        self.host = host
        self.port = port
        self.timeout = timeout
        self.started_tls = False
        self.logged_in_as = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.started_tls = True

    def login(self, username, password):
        self.logged_in_as = username

    def send_message(self, message):
        self.outbox.append(message)


@pytest.fixture
def smtp_outbox():
    return []


@pytest.fixture
def smtp_factory(smtp_outbox):
    def factory(host, port, timeout=None):
        return FakeSMTP(smtp_outbox, host, port, timeout)
    return factory
