# tests/conftest.py
import os

# Settings are read at import time; seed them before haatbazaar is imported
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef0123456789abcdef")
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017/haatbazaar_test")
os.environ["AUDIT_LOG_ENABLED"] = "false"
os.environ["OUTBOX_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.pop("REDIS_URL", None)

import pytest  # noqa: E402

from haatbazaar.modules.group_sales.repository import GroupSaleRepository
from haatbazaar.modules.haat_events.repository import HaatEventRepository
from haatbazaar.modules.negotiations.repository import NegotiationRepository
from haatbazaar.modules.notifications.repository import NotificationRepository, OutboxRepository
from haatbazaar.modules.notifications.service import NotificationService
from haatbazaar.modules.orders.inventory import InventoryManager
from haatbazaar.modules.orders.repository import InventoryLedgerRepository, OrderRepository
from haatbazaar.modules.products.repository import ProductRepository
from haatbazaar.modules.users.repository import UserRepository

from tests.fakes import FakeDatabase


@pytest.fixture
def db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def user_repo(db) -> UserRepository:
    return UserRepository(db)


@pytest.fixture
def product_repo(db) -> ProductRepository:
    return ProductRepository(db)


@pytest.fixture
def order_repo(db) -> OrderRepository:
    return OrderRepository(db)


@pytest.fixture
def ledger_repo(db) -> InventoryLedgerRepository:
    return InventoryLedgerRepository(db)


@pytest.fixture
def event_repo(db) -> HaatEventRepository:
    return HaatEventRepository(db)


@pytest.fixture
def sale_repo(db) -> GroupSaleRepository:
    return GroupSaleRepository(db)


@pytest.fixture
def negotiation_repo(db) -> NegotiationRepository:
    return NegotiationRepository(db)


@pytest.fixture
def notifier(db, user_repo) -> NotificationService:
    return NotificationService(NotificationRepository(db), OutboxRepository(db), user_repo)


@pytest.fixture
def inventory(product_repo, ledger_repo, order_repo) -> InventoryManager:
    return InventoryManager(product_repo, ledger_repo, order_repo)
