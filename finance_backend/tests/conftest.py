"""
Centralized Test Configuration.
"""

import pytest
from datetime import date
from decimal import Decimal
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from finance_backend.app.main import app
from finance_backend.app.db.session import get_db, get_session_factory, Base
from finance_backend.app.core.redis_client import get_redis
from finance_backend.app.core.jwt import create_access_token
from finance_backend.app.models.account import Account
from finance_backend.app.models.enums import UserRole
from finance_backend.app.models.ledger_entry import LedgerEntry, LedgerLine
from finance_backend.app.models.ledger_enums import AccountType, EntryStatus, LedgerLineType
from finance_backend.app.schemas.revenue import AsaasWebhookEvent, PaymentWebhookData
import finance_backend.app.core.redis_client as redis_client_module

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

# Base chart of accounts used by the pipeline and the reports
CHART_OF_ACCOUNTS = [
    ("1.1.1.1", "CAIXA", AccountType.ASSET),
    ("1.1.1.2", "BANCOS CONTA MOVIMENTO", AccountType.ASSET),
    ("3.1.1.1", "CUSTO DOS SERVIÇOS PRESTADOS", AccountType.COST),
    ("4.1.1.1", "RECEITA DE SERVIÇOS", AccountType.REVENUE),
    ("5.1.1.1", "SALÁRIOS", AccountType.EXPENSE),
]

# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def incr(self, key):
        value = int(self.store.get(key) or 0) + 1
        self.store[key] = str(value)
        return value

    async def delete(self, key):
        if self._closed:
            return 0
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        if self._closed:
            return 0
        return 1 if key in self.store else 0

    async def flushdb(self):
        if not self._closed:
            self.store = {}

    async def aclose(self):
        self._closed = True
        self.store = {}

# Redis Fixture (Session Scope)
@pytest.fixture(scope="session")
async def redis_client_session():
    return MockRedis()

@pytest.fixture(scope="session", autouse=True)
def apply_overrides(redis_client_session):
    """Apply overrides once for the session.
    Global override is safer here than per-test override to avoid app state flux.
    """

    # Patch the global redis client used by the report cache and /health
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = redis_client_session

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    def override_get_session_factory():
        return TestingSessionLocal

    async def override_get_redis():
        return redis_client_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = override_get_session_factory
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client

@pytest.fixture(autouse=True)
async def setup_database(redis_client_session):
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    await redis_client_session.flushdb()

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session

@pytest.fixture
def session_factory():
    return TestingSessionLocal

@pytest.fixture
async def accounts(db_session):
    """Seed the chart of accounts. Returns {code: id}."""
    rows = [
        Account(code=code, name=name, account_type=account_type, level=4, is_active=True)
        for code, name, account_type in CHART_OF_ACCOUNTS
    ]
    db_session.add_all(rows)
    await db_session.commit()
    return {row.code: row.id for row in rows}

@pytest.fixture
def make_payment():
    """Build a confirmed Asaas payment; value in cents."""
    def _make(payment_id="pay_001", value=50000, payment_date=date(2024, 1, 15), **overrides):
        data = {
            "id": payment_id,
            "customer": "cus_001",
            "value": value,
            "description": "Corte + barba",
            "date": payment_date.isoformat(),
            "billingType": "PIX",
            "status": "CONFIRMED",
        }
        data.update(overrides)
        return PaymentWebhookData.model_validate(data)
    return _make

@pytest.fixture
def make_event(make_payment):
    def _make(event="PAYMENT_CONFIRMED", **payment_fields):
        payment = make_payment(**payment_fields)
        return AsaasWebhookEvent(event=event, payment=payment, id=f"evt_{payment.id}")
    return _make

def _token(role: UserRole, sub: str, **claims) -> str:
    return create_access_token(data={"sub": sub, "role": role.value, **claims})

@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {_token(UserRole.ADMIN, 'admin@trato')}"}

@pytest.fixture
def manager_headers():
    return {"Authorization": f"Bearer {_token(UserRole.MANAGER, 'gerente@trato')}"}

@pytest.fixture
def unit_manager_headers():
    """Manager whose token is bound to the trato unit."""
    return {"Authorization": f"Bearer {_token(UserRole.MANAGER, 'gerente@trato', unidade_id='trato')}"}

@pytest.fixture
def barber_headers():
    return {"Authorization": f"Bearer {_token(UserRole.BARBER, 'barbeiro@trato')}"}

@pytest.fixture
def add_entry(db_session):
    """Insert a confirmed ledger entry with its debit and credit lines."""
    async def _add(debit_id, credit_id, amount, day, description="Lançamento manual",
                   launch_date=None, status=EntryStatus.CONFIRMED, client_id=None, with_lines=True):
        amount = Decimal(str(amount))
        entry = LedgerEntry(
            debit_account_id=debit_id,
            credit_account_id=credit_id,
            amount=amount,
            launch_date=launch_date or day,
            competence_date=day,
            description=description,
            unidade_id="trato",
            client_id=client_id,
            status=status,
            created_by="test",
        )
        if with_lines:
            entry.lines = [
                LedgerLine(account_id=debit_id, line_type=LedgerLineType.DEBIT, amount=amount),
                LedgerLine(account_id=credit_id, line_type=LedgerLineType.CREDIT, amount=amount),
            ]
        db_session.add(entry)
        await db_session.commit()
        return entry
    return _add
