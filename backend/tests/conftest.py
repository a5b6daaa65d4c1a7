# Shared pytest configuration and fixtures for all test types
from datetime import datetime, timezone, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from api.main import create_app
from common.core.config import Settings
from common.db.base import Base
from packages.auth.dependencies import get_current_active_user
from packages.auth.models.domain.authenticated_user import AuthenticatedUser
from packages.billing.models.database.subscription import SubscriptionEntity
from packages.billing.models.database.usage import UsageRecordEntity  # noqa: F401
from packages.billing.models.domain.enums import (
    BillingPeriod,
    SubscriptionStatus,
    SubscriptionTier,
)
from packages.billing.models.domain.stripe_webhooks import StripeSubscriptionData
from packages.billing.models.domain.subscription import Subscription
from packages.billing.tiers import PriceCatalog
from packages.users.models.database.user import UserEntity

# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

PERIOD_START = datetime(2026, 10, 5, tzinfo=timezone.utc)
PERIOD_END = datetime(2026, 11, 5, tzinfo=timezone.utc)

TEST_PRICES = {
    (SubscriptionTier.DREAM_WEAVER, BillingPeriod.MONTHLY): "price_dw_monthly",
    (SubscriptionTier.DREAM_WEAVER, BillingPeriod.ANNUAL): "price_dw_annual",
    (SubscriptionTier.MAGIC_CIRCLE, BillingPeriod.MONTHLY): "price_mc_monthly",
    (SubscriptionTier.MAGIC_CIRCLE, BillingPeriod.ANNUAL): "price_mc_annual",
    (SubscriptionTier.ENCHANTED_LIBRARY, BillingPeriod.MONTHLY): "price_el_monthly",
    (SubscriptionTier.ENCHANTED_LIBRARY, BillingPeriod.ANNUAL): "price_el_annual",
}


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine and initialize schema."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINT rollbacks behave on SQLite
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_connection(test_engine):
    """Create test connection with outer transaction for rollback isolation."""
    async with test_engine.connect() as connection:
        trans = await connection.begin()
        yield connection
        await trans.rollback()


@pytest_asyncio.fixture(scope="function")
async def test_session_factory(test_connection):
    """Create session factory bound to test connection.

    Using join_transaction_mode="create_savepoint" so commits inside
    services release savepoints instead of ending the outer transaction.
    """
    return async_sessionmaker(
        bind=test_connection,
        class_=AsyncSession,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )


@pytest_asyncio.fixture(scope="function")
async def test_db(test_session_factory):
    """Create a test database session."""
    async with test_session_factory() as session:
        yield session


# ============================================================================
# Billing Collaborators
# ============================================================================


@pytest.fixture
def price_catalog():
    """Price catalog with every paid tier and cadence mapped."""
    return PriceCatalog(
        TEST_PRICES,
        legacy_prices={"price_legacy": (SubscriptionTier.MAGIC_CIRCLE, BillingPeriod.MONTHLY)},
    )


def make_stripe_subscription(
    subscription_id: str = "sub_test123",
    customer: str = "cus_test123",
    price_id: str = "price_mc_monthly",
    status: str = "active",
    period_start: datetime = PERIOD_START,
    period_end: datetime = PERIOD_END,
    cancel_at_period_end: bool = False,
) -> StripeSubscriptionData:
    """Build a Stripe subscription as the provider would return it."""
    return StripeSubscriptionData.model_validate(
        {
            "id": subscription_id,
            "customer": customer,
            "status": status,
            "cancel_at_period_end": cancel_at_period_end,
            "items": {
                "data": [
                    {
                        "id": "si_test123",
                        "price": {"id": price_id},
                        "current_period_start": int(period_start.timestamp()),
                        "current_period_end": int(period_end.timestamp()),
                    }
                ]
            },
        }
    )


@pytest.fixture
def mock_payment_provider():
    """Mocked payment provider (Stripe)."""
    provider = AsyncMock()
    provider.retrieve_subscription = AsyncMock(return_value=make_stripe_subscription())
    provider.update_subscription_price = AsyncMock(
        return_value=make_stripe_subscription()
    )
    provider.set_cancel_at_period_end = AsyncMock(
        return_value=make_stripe_subscription()
    )
    provider.cancel_subscription = AsyncMock(return_value=None)
    provider.create_customer = AsyncMock(return_value="cus_new123")
    provider.create_checkout_session = AsyncMock(
        return_value="https://checkout.stripe.com/c/pay/cs_test123"
    )
    provider.create_portal_session = AsyncMock(
        return_value="https://billing.stripe.com/p/session/test123"
    )
    provider.construct_event = MagicMock()
    provider.health_check = AsyncMock(return_value=True)
    return provider


# ============================================================================
# User & Subscription Fixtures
# ============================================================================


@pytest_asyncio.fixture(scope="function")
async def sample_user_entity(test_db: AsyncSession):
    """Create a sample user."""
    user = UserEntity(
        auth_user_id="auth_parent_1",
        email="parent@example.com",
        full_name="Test Parent",
    )
    test_db.add(user)
    await test_db.commit()
    await test_db.refresh(user)
    return user


@pytest_asyncio.fixture(scope="function")
async def test_user(sample_user_entity):
    """Create a test authenticated user."""
    return AuthenticatedUser(
        user_id=sample_user_entity.id,
        auth_user_id=sample_user_entity.auth_user_id,
        email=sample_user_entity.email,
    )


async def _add_subscription(test_db: AsyncSession, **kwargs) -> Subscription:
    entity = SubscriptionEntity(**kwargs)
    test_db.add(entity)
    await test_db.commit()
    await test_db.refresh(entity)
    return Subscription.model_validate(entity)


@pytest_asyncio.fixture(scope="function")
async def free_subscription(test_db: AsyncSession, sample_user_entity):
    """The default subscription every new user starts with."""
    return await _add_subscription(
        test_db,
        user_id=sample_user_entity.id,
        tier=SubscriptionTier.FREE.value,
        status=SubscriptionStatus.CANCELED.value,
    )


@pytest_asyncio.fixture(scope="function")
async def sample_subscription(test_db: AsyncSession, sample_user_entity):
    """Create a sample active Magic Circle subscription."""
    return await _add_subscription(
        test_db,
        user_id=sample_user_entity.id,
        tier=SubscriptionTier.MAGIC_CIRCLE.value,
        status=SubscriptionStatus.ACTIVE.value,
        billing_period=BillingPeriod.MONTHLY.value,
        stripe_customer_id="cus_test123",
        stripe_subscription_id="sub_test123",
        current_period_start=PERIOD_START,
        current_period_end=PERIOD_END,
    )


@pytest_asyncio.fixture(scope="function")
async def past_due_subscription(test_db: AsyncSession, sample_user_entity):
    """Create a Magic Circle subscription whose last payment failed."""
    return await _add_subscription(
        test_db,
        user_id=sample_user_entity.id,
        tier=SubscriptionTier.MAGIC_CIRCLE.value,
        status=SubscriptionStatus.PAST_DUE.value,
        billing_period=BillingPeriod.MONTHLY.value,
        stripe_customer_id="cus_test123",
        stripe_subscription_id="sub_test123",
        current_period_start=PERIOD_START,
        current_period_end=PERIOD_END,
    )


@pytest_asyncio.fixture(scope="function")
async def dream_weaver_subscription(test_db: AsyncSession, sample_user_entity):
    """Create an active Dream Weaver subscription."""
    return await _add_subscription(
        test_db,
        user_id=sample_user_entity.id,
        tier=SubscriptionTier.DREAM_WEAVER.value,
        status=SubscriptionStatus.ACTIVE.value,
        billing_period=BillingPeriod.MONTHLY.value,
        stripe_customer_id="cus_test123",
        stripe_subscription_id="sub_test123",
        current_period_start=PERIOD_START,
        current_period_end=PERIOD_END,
    )


# ============================================================================
# API Client
# ============================================================================


@pytest.fixture
def test_settings():
    return Settings(
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret="whsec_test",
        database_url_override=TEST_DATABASE_URL,
    )


@pytest_asyncio.fixture(scope="function")
async def app(test_settings, test_session_factory, mock_payment_provider, price_catalog):
    """Application wired to the test database and mocked Stripe."""
    return create_app(
        settings=test_settings,
        session_factory=test_session_factory,
        payment_provider=mock_payment_provider,
        price_catalog=price_catalog,
    )


@pytest_asyncio.fixture(scope="function")
async def client(app, test_user):
    """Create a test client authenticated as test_user."""

    def override_get_current_active_user():
        return test_user

    app.dependency_overrides[get_current_active_user] = override_get_current_active_user

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def anonymous_client(app):
    """Client without an identity override."""
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac


@pytest.fixture
def stripe_subscription_factory():
    """Builder for Stripe subscription payloads as returned by the provider."""
    return make_stripe_subscription
