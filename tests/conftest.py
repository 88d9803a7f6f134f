"""Shared fixtures for the depwatch test suite."""

from typing import Dict, List

import dns.resolver
import pytest
import pytest_asyncio

from database.connection import DatabaseManager
from monitoring.models import PollTarget
from utils.validators import URLValidator


@pytest_asyncio.fixture
async def db(tmp_path):
    manager = DatabaseManager(url=f"sqlite+aiosqlite:///{tmp_path / 'depwatch.db'}")
    await manager.connect()
    yield manager
    await manager.disconnect()


@pytest.fixture
def target() -> PollTarget:
    return PollTarget(
        id="svc-1",
        name="orders",
        health_endpoint="https://orders.example.com/health",
    )


class FakeResolver:
    """Resolver double: hostname -> addresses, unknown names raise NXDOMAIN."""

    def __init__(self, records: Dict[str, List[str]]):
        self.records = records
        self.calls: List[str] = []

    async def __call__(self, hostname: str) -> List[str]:
        self.calls.append(hostname)
        if hostname not in self.records:
            raise dns.resolver.NXDOMAIN()
        return self.records[hostname]


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver({
        "orders.example.com": ["93.184.216.34"],
        "billing.example.com": ["93.184.216.35"],
        "payments.example.com": ["93.184.216.36"],
    })


@pytest.fixture
def validator(resolver) -> URLValidator:
    return URLValidator(resolver=resolver, dns_timeout=1.0)
