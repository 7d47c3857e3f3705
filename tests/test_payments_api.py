from datetime import date
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.models import FeeAuditLog, Payment, PaymentAllocation, Student


def _body(student, items, amount, **extra):
    body = {
        "student_id": str(student.id),
        "fee_item_ids": [str(i.id) for i in items],
        "tendered_amount": amount,
        "payment_method": "cash",
        "paid_at": "2026-05-02T10:00:00+00:00",
    }
    body.update(extra)
    return body


async def _payment_count(db_session: AsyncSession) -> int:
    return (await db_session.execute(select(func.count(Payment.id)))).scalar()


@pytest.mark.asyncio
async def test_create_payment_full_settlement(
    client: AsyncClient, db_session: AsyncSession, headers: dict, student: Student, make_fee_item
) -> None:
    item = await make_fee_item("1000")

    response = await client.post("/api/v1/payments", json=_body(student, [item], "1000"), headers=headers)
    assert response.status_code == 201
    data = response.json()

    assert data["receipt_number"] == "GVS2026-000001"
    assert data["payment"]["receipt_number"] == "GVS2026-000001"
    assert data["payment"]["payment_status"] == "pending"
    assert Decimal(data["payment"]["tendered_amount"]) == Decimal("1000")
    assert data["fee_items"][0]["new_status"] == "paid"
    assert Decimal(data["payment"]["allocations"][0]["allocated_amount"]) == Decimal("1000")
    assert data["payment"]["allocations"][0]["fee_item_name"] == "Tuition"

    await db_session.refresh(item)
    assert item.paid_amount == Decimal("1000")
    assert item.status == "paid"


@pytest.mark.asyncio
async def test_create_payment_proportional_split(
    client: AsyncClient, db_session: AsyncSession, headers: dict, student: Student, make_fee_item
) -> None:
    tuition = await make_fee_item("600", due_date=date(2026, 4, 1), name="Tuition Term 1")
    transport = await make_fee_item("400", due_date=date(2026, 4, 15), name="Transport")

    response = await client.post(
        "/api/v1/payments",
        json=_body(student, [tuition, transport], "500", payment_method="upi", notes=" counter 2 "),
        headers={**headers, "X-User-Id": "7f0c2a0e-1111-4d2b-9a55-0c1c3f7e9a10"},
    )
    assert response.status_code == 201
    payment = response.json()["payment"]
    split = {a["fee_item_name"]: Decimal(a["allocated_amount"]) for a in payment["allocations"]}
    assert split == {"Tuition Term 1": Decimal("300"), "Transport": Decimal("200")}
    assert payment["notes"] == "counter 2"
    assert payment["collected_by"] == "7f0c2a0e-1111-4d2b-9a55-0c1c3f7e9a10"
    assert Decimal(payment["total_outstanding_at_time"]) == Decimal("1000")

    await db_session.refresh(tuition)
    await db_session.refresh(transport)
    assert (tuition.status, transport.status) == ("partial", "partial")

    audit = (await db_session.execute(select(FeeAuditLog.action_type))).scalars().all()
    assert audit.count("CREATE") == 1
    assert audit.count("UPDATE") == 2


@pytest.mark.asyncio
async def test_amount_exceeding_outstanding_writes_nothing(
    client: AsyncClient, db_session: AsyncSession, headers: dict, student: Student, make_fee_item
) -> None:
    item = await make_fee_item("1000")

    response = await client.post("/api/v1/payments", json=_body(student, [item], "1001"), headers=headers)
    assert response.status_code == 400
    assert "exceeds" in response.json()["detail"]
    assert await _payment_count(db_session) == 0
    assert (await db_session.execute(select(func.count(PaymentAllocation.id)))).scalar() == 0


@pytest.mark.asyncio
async def test_foreign_fee_item_is_rejected(
    client: AsyncClient, db_session: AsyncSession, headers: dict, institution, student: Student, make_fee_item
) -> None:
    sibling = Student(institution_id=institution.id, admission_number="ADM-009", first_name="Meera")
    db_session.add(sibling)
    await db_session.commit()
    theirs = await make_fee_item("500", student_id=sibling.id)

    response = await client.post("/api/v1/payments", json=_body(student, [theirs], "100"), headers=headers)
    assert response.status_code == 400
    assert await _payment_count(db_session) == 0


@pytest.mark.asyncio
async def test_unknown_student_is_not_found(client: AsyncClient, headers: dict, student: Student, make_fee_item) -> None:
    item = await make_fee_item("100")
    body = _body(student, [item], "10")
    body["student_id"] = "00000000-0000-4000-8000-000000000000"

    response = await client.post("/api/v1/payments", json=body, headers=headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_institution_header_is_required(client: AsyncClient, student: Student, make_fee_item) -> None:
    item = await make_fee_item("100")
    response = await client.post("/api/v1/payments", json=_body(student, [item], "10"))
    assert response.status_code == 400

    response = await client.post(
        "/api/v1/payments",
        json=_body(student, [item], "10"),
        headers={"X-Institution-Id": "00000000-0000-4000-8000-000000000000"},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_request_shape_is_validated(client: AsyncClient, headers: dict, student: Student, make_fee_item) -> None:
    item = await make_fee_item("100")
    for bad in (
        _body(student, [], "10"),
        _body(student, [item], "-1"),
        _body(student, [item], "10.001"),
        _body(student, [item], "10", payment_method="bitcoin"),
    ):
        response = await client.post("/api/v1/payments", json=bad, headers=headers)
        assert response.status_code == 422


@pytest.mark.asyncio
async def test_new_payment_cannot_start_refunded(
    client: AsyncClient, headers: dict, student: Student, make_fee_item
) -> None:
    item = await make_fee_item("100")
    response = await client.post(
        "/api/v1/payments", json=_body(student, [item], "10", payment_status="refunded"), headers=headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_idempotent_retry_returns_original(
    client: AsyncClient, db_session: AsyncSession, headers: dict, student: Student, make_fee_item
) -> None:
    item = await make_fee_item("1000")
    body = _body(student, [item], "250", idempotency_key="desk-1-42")

    first = await client.post("/api/v1/payments", json=body, headers=headers)
    second = await client.post("/api/v1/payments", json=body, headers=headers)

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["replayed"] is True
    assert second.json()["receipt_number"] == first.json()["receipt_number"]
    assert await _payment_count(db_session) == 1
    await db_session.refresh(item)
    assert item.paid_amount == Decimal("250")


@pytest.mark.asyncio
async def test_receipt_numbers_increase(client: AsyncClient, headers: dict, student: Student, make_fee_item) -> None:
    item = await make_fee_item("1000")
    numbers = []
    for _ in range(3):
        response = await client.post("/api/v1/payments", json=_body(student, [item], "100"), headers=headers)
        assert response.status_code == 201
        numbers.append(response.json()["receipt_number"])
    assert numbers == ["GVS2026-000001", "GVS2026-000002", "GVS2026-000003"]


@pytest.mark.asyncio
async def test_get_and_list_payments(client: AsyncClient, headers: dict, student: Student, make_fee_item) -> None:
    item = await make_fee_item("1000")
    created = (await client.post("/api/v1/payments", json=_body(student, [item], "100"), headers=headers)).json()
    await client.post(
        "/api/v1/payments",
        json=_body(student, [item], "50", payment_status="completed", paid_at="2026-06-01T10:00:00+00:00"),
        headers=headers,
    )

    response = await client.get(f"/api/v1/payments/{created['payment']['id']}", headers=headers)
    assert response.status_code == 200
    assert response.json()["receipt_number"] == "GVS2026-000001"
    assert len(response.json()["allocations"]) == 1

    listing = await client.get("/api/v1/payments", params={"student_id": str(student.id)}, headers=headers)
    assert [p["receipt_number"] for p in listing.json()] == ["GVS2026-000002", "GVS2026-000001"]

    completed = await client.get("/api/v1/payments", params={"payment_status": "completed"}, headers=headers)
    assert [p["receipt_number"] for p in completed.json()] == ["GVS2026-000002"]

    missing = await client.get("/api/v1/payments/00000000-0000-4000-8000-000000000000", headers=headers)
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_payment_status_transitions(
    client: AsyncClient, db_session: AsyncSession, headers: dict, student: Student, make_fee_item
) -> None:
    item = await make_fee_item("1000")
    created = (await client.post("/api/v1/payments", json=_body(student, [item], "100"), headers=headers)).json()
    url = f"/api/v1/payments/{created['payment']['id']}/status"

    response = await client.patch(url, json={"payment_status": "completed"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["payment_status"] == "completed"

    response = await client.patch(url, json={"payment_status": "pending"}, headers=headers)
    assert response.status_code == 409

    response = await client.patch(url, json={"payment_status": "refunded", "notes": "cheque bounced"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["notes"] == "cheque bounced"

    response = await client.patch(url, json={"payment_status": "completed"}, headers=headers)
    assert response.status_code == 409

    audit = (
        await db_session.execute(select(FeeAuditLog).where(FeeAuditLog.action_type == "STATUS_CHANGE"))
    ).scalars().all()
    assert len(audit) == 2


@pytest.mark.asyncio
async def test_idempotency_key_reused_for_another_student(
    client: AsyncClient, db_session: AsyncSession, headers: dict, institution, student: Student, make_fee_item
) -> None:
    sibling = Student(institution_id=institution.id, admission_number="ADM-010", first_name="Kiran")
    db_session.add(sibling)
    await db_session.commit()
    mine = await make_fee_item("1000")
    theirs = await make_fee_item("1000", student_id=sibling.id)

    first = await client.post(
        "/api/v1/payments", json=_body(student, [mine], "400", idempotency_key="desk-1-77"), headers=headers
    )
    second = await client.post(
        "/api/v1/payments", json=_body(sibling, [theirs], "500", idempotency_key="desk-1-77"), headers=headers
    )

    assert first.status_code == 201
    assert second.status_code == 409
    assert "idempotency" in second.json()["detail"].lower()
    assert await _payment_count(db_session) == 1
    await db_session.refresh(theirs)
    assert theirs.paid_amount == Decimal("0")


@pytest.mark.asyncio
async def test_payment_survives_receipt_counter_race(
    client: AsyncClient,
    db_session: AsyncSession,
    headers: dict,
    student: Student,
    make_fee_item,
    receipt_counter_conflict,
) -> None:
    item = await make_fee_item("1000")

    response = await client.post("/api/v1/payments", json=_body(student, [item], "250"), headers=headers)

    assert response.status_code == 201
    assert response.json()["receipt_number"] == "GVS2026-000001"
    assert receipt_counter_conflict == [True]
    assert await _payment_count(db_session) == 1
    await db_session.refresh(item)
    assert item.paid_amount == Decimal("250")
