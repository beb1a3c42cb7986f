import os
from datetime import datetime, timedelta, timezone
from itertools import count

import pytest
from aiohttp import web
from aiohttp.test_utils import TestClient
from faker import Faker
from tortoise import Tortoise

from psrental.middleware import session_error_middleware
from psrental.models import Category, Device, Member
from psrental.models.util import ChargeType, ChargeMethod
from psrental.service.access.members import hash_pin
from psrental.service.actuator import Actuator, ActuatorBridge
from psrental.service.background.expiry_sweeper import ExpirySweeper
from psrental.service.billing import PaymentLedger
from psrental.service.manager.session_manager import SessionManager
from psrental.signals import register_signals
from psrental.views import register_views

pytest_plugins = 'aiohttp.pytest_plugin'

fake = Faker()

MEMBER_PIN = "4321"


class FakeClock:
    """A clock that only moves when told to."""

    def __init__(self, now: datetime = None):
        self.now = now if now is not None else datetime(2025, 3, 1, 14, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


class RecordingPaymentLedger(PaymentLedger):

    def __init__(self):
        self.payments = []

    async def record(self, *, session, amount, type=ChargeType.RENTAL, method=ChargeMethod.CASH,
                     shift_id=None, user_id=None, note=None):
        self.payments.append({
            "session_id": session.id if session is not None else None,
            "amount": amount, "type": type, "method": method,
            "shift_id": shift_id, "user_id": user_id, "note": note,
        })


class RecordingActuator(Actuator):

    def __init__(self):
        self.commands = []
        self.closed = False

    async def power_on(self, device, duration):
        self.commands.append(("on", device.id, duration))

    async def power_off(self, device):
        self.commands.append(("off", device.id))

    async def close(self):
        self.closed = True


@pytest.fixture(scope="session")
def database_url():
    return os.getenv("DATABASE_URL", "sqlite://:memory:")


@pytest.fixture
async def database(loop, database_url):
    await Tortoise.init(
        db_url=database_url,
        modules={'models': ['psrental.models']},
    )
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


@pytest.fixture
def member_pin() -> str:
    """The PIN every member made by the factory has."""
    return MEMBER_PIN


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def payment_ledger() -> RecordingPaymentLedger:
    return RecordingPaymentLedger()


@pytest.fixture
def actuator() -> RecordingActuator:
    return RecordingActuator()


@pytest.fixture
def session_manager(database, clock, payment_ledger) -> SessionManager:
    return SessionManager(payments=payment_ledger, clock=clock)


@pytest.fixture
def expiry_sweeper(session_manager, clock) -> ExpirySweeper:
    return ExpirySweeper(session_manager, grace=300, interval=3600, clock=clock)


@pytest.fixture
def category_factory(database):
    async def create_category(cost_per_period=10000, period_minutes=60):
        return await Category.create(
            name=fake.word().title(), cost_per_period=cost_per_period, period_minutes=period_minutes
        )

    return create_category


@pytest.fixture
def device_factory(database, category_factory):
    device_number = count(1)

    async def create_device(category=None, relay_number=None):
        if category is None:
            category = await category_factory()
        number = next(device_number)
        return await Device.create(
            id=f"ps-{number:02}", name=f"{fake.color_name()} Console",
            category=category, relay_number=relay_number if relay_number is not None else number
        )

    return create_device


@pytest.fixture
def member_factory(database):
    member_number = count(1)

    async def create_member(deposit=0, pin=MEMBER_PIN):
        number = next(member_number)
        return await Member.create(
            username=f"{fake.user_name()}{number}", email=f"{number}.{fake.email()}",
            pin_hash=await hash_pin(pin), deposit=deposit
        )

    return create_member


@pytest.fixture
async def random_category(category_factory) -> Category:
    """A category billing 10000 per hour."""
    return await category_factory()


@pytest.fixture
async def random_device(device_factory, random_category) -> Device:
    return await device_factory(random_category)


@pytest.fixture
async def random_member(member_factory) -> Member:
    return await member_factory(deposit=50000)


@pytest.fixture
async def client(aiohttp_client, database, session_manager, expiry_sweeper, actuator) -> TestClient:
    app = web.Application(middlewares=[session_error_middleware])

    app['session_manager'] = session_manager
    app['expiry_sweeper'] = expiry_sweeper
    app['actuator_bridge'] = ActuatorBridge(session_manager.hub, actuator)

    register_signals(app, init_database=False)  # we get the database from a fixture
    register_views(app, "/api/v1")

    return await aiohttp_client(app)
