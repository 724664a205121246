import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from app.db import DbManager
from app.db.models import (
    DbBaseModel,
    Doctor,
    FamilyMember,
    Notification,
    User,
    UserRole,
)
from app.db.schemas import AppointmentCreate
from app.integrations import DbNotifier, GatewayCancelResult
from app.services.v1 import ReconciliationEngine
from common.config.structlog_config import configure_structlog, is_configured

if not is_configured():
    configure_structlog(logging.DEBUG)


class FakeGateway:
    """Records calls; answers with ``cancel_result`` (success by default)."""

    def __init__(self, cancel_result: Optional[GatewayCancelResult] = None):
        self.cancel_result = cancel_result or GatewayCancelResult(success=True)
        self.cancel_calls: list[tuple[str, int, str]] = []
        self.hash_calls: list[tuple[str, int, str]] = []
        self.before_return = None

    async def request_hash(self, order_id: str, amount: int, method: str) -> dict[str, str]:
        self.hash_calls.append((order_id, amount, method))
        return {"ORDERNO": order_id, "AMOUNT": str(amount), "KIWOOM_ENC": "signed"}

    async def cancel(self, transaction_key: str, amount: int, reason: str) -> GatewayCancelResult:
        self.cancel_calls.append((transaction_key, amount, reason))
        if self.before_return is not None:
            hook, self.before_return = self.before_return, None
            await hook()
        return self.cancel_result


class FakeMeetings:
    def __init__(self, link: Optional[str] = "https://meet.google.com/abc-defg-hij", error: Optional[Exception] = None):
        self.link = link
        self.error = error
        self.calls: list[tuple[str, datetime, datetime, str]] = []
        self.before_return = None

    async def create_meeting(self, appointment_id, start, end, summary):
        self.calls.append((appointment_id, start, end, summary))
        if self.before_return is not None:
            hook, self.before_return = self.before_return, None
            await hook()
        if self.error is not None:
            raise self.error
        return self.link


class FailingNotifier:
    def __init__(self):
        self.attempts = 0

    async def create(self, user_id, type, message, key=None, params=None, link=None):
        self.attempts += 1
        raise ConnectionError("notification store unavailable")


@dataclass
class Seed:
    patient_id: str
    other_patient_id: str
    member_id: str
    doctor_id: str
    operator_ids: list[str] = field(default_factory=list)


@pytest_asyncio.fixture
async def db_manager(tmp_path):
    manager = DbManager(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with manager.engine.begin() as conn:
        await conn.run_sync(DbBaseModel.metadata.create_all)
    yield manager
    await manager.dispose()


@pytest_asyncio.fixture
async def seed(db_manager) -> Seed:
    patient = User(name="Kim Minji", email="minji@example.com", role=UserRole.PATIENT)
    other = User(name="Lee Junho", email="junho@example.com", role=UserRole.PATIENT)
    operators = [
        User(name="Operator A", email="ops-a@example.com", role=UserRole.ADMIN),
        User(name="Operator B", email="ops-b@example.com", role=UserRole.ADMIN),
    ]
    doctor = Doctor(name="Park", specialty="Internal Medicine")

    async with db_manager.session() as session:
        session.add_all([patient, other, doctor, *operators])
        await session.flush()
        member = FamilyMember(user_id=patient.user_id, name="Kim Seoyeon", relation="CHILD")
        session.add(member)
        await session.flush()

    return Seed(
        patient_id=patient.user_id,
        other_patient_id=other.user_id,
        member_id=member.member_id,
        doctor_id=doctor.doctor_id,
        operator_ids=[o.user_id for o in operators],
    )


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def meetings() -> FakeMeetings:
    return FakeMeetings()


@pytest.fixture
def engine(db_manager, gateway, meetings) -> ReconciliationEngine:
    return ReconciliationEngine(
        db_manager.unit_of_work,
        gateway=gateway,
        meetings=meetings,
        notifier=DbNotifier(db_manager.unit_of_work),
    )


def appointment_request(seed: Seed, price: Optional[str] = None, **overrides: Any) -> AppointmentCreate:
    values: dict[str, Any] = {
        "requester_id": seed.patient_id,
        "doctor_id": seed.doctor_id,
        "appointment_date": datetime.now(timezone.utc) + timedelta(days=1),
        "price": Decimal(price) if price is not None else None,
    }
    values.update(overrides)
    return AppointmentCreate(**values)


async def count_notifications(db_manager: DbManager, user_id: Optional[str] = None, type: Optional[str] = None) -> int:
    query = select(func.count()).select_from(Notification)
    if user_id is not None:
        query = query.where(Notification.user_id == user_id)
    if type is not None:
        query = query.where(Notification.type == type)
    async with db_manager.session() as session:
        return (await session.execute(query)).scalar_one()
