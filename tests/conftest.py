import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.enums import FeeItemStatus
from app.core.models import Institution, ReceiptSequence, Student, StudentFeeItem
from app.db.session import Base, get_db
from app.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture()
async def db_engine():
    """Fresh in-memory SQLite database per test; StaticPool keeps every session on one connection."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for a test and override FastAPI dependency."""
    async_session = async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.clear()


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
async def institution(db_session: AsyncSession) -> Institution:
    inst = Institution(code="GVS", name="Green Valley School")
    db_session.add(inst)
    await db_session.commit()
    await db_session.refresh(inst)
    return inst


@pytest.fixture()
async def student(db_session: AsyncSession, institution: Institution) -> Student:
    st = Student(
        institution_id=institution.id,
        admission_number="ADM-001",
        first_name="Asha",
        last_name="Rao",
    )
    db_session.add(st)
    await db_session.commit()
    await db_session.refresh(st)
    return st


@pytest.fixture()
def headers(institution: Institution) -> dict:
    return {"X-Institution-Id": str(institution.id)}


@pytest.fixture()
def make_fee_item(db_session: AsyncSession, institution: Institution, student: Student):
    """Factory inserting a fee item for the default student (or another one)."""

    async def _make(
        owed: str,
        paid: str = "0",
        due_date: date = date(2026, 4, 10),
        name: str = "Tuition",
        student_id=None,
    ) -> StudentFeeItem:
        owed_amount = Decimal(owed)
        paid_amount = Decimal(paid)
        if paid_amount >= owed_amount:
            item_status = FeeItemStatus.paid.value
        elif paid_amount > 0:
            item_status = FeeItemStatus.partial.value
        else:
            item_status = FeeItemStatus.pending.value
        item = StudentFeeItem(
            institution_id=institution.id,
            student_id=student_id or student.id,
            name=name,
            owed_amount=owed_amount,
            paid_amount=paid_amount,
            penalty_amount=Decimal("0"),
            due_date=due_date,
            status=item_status,
        )
        db_session.add(item)
        await db_session.commit()
        await db_session.refresh(item)
        return item

    return _make


@pytest.fixture()
def receipt_counter_conflict(db_session: AsyncSession, monkeypatch):
    """Make the first insert of a receipt counter row fail as if another payment created it first."""
    real_flush = db_session.flush
    conflicts = []

    async def flush(objects=None) -> None:
        if not conflicts and any(isinstance(obj, ReceiptSequence) for obj in db_session.new):
            conflicts.append(True)
            raise IntegrityError(
                "INSERT INTO receipt_sequences", {}, Exception("UNIQUE constraint failed: receipt_sequences")
            )
        await real_flush(objects)

    monkeypatch.setattr(db_session, "flush", flush)
    return conflicts
