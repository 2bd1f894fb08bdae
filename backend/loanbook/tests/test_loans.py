"""End-to-end tests for registering loans and paying installments."""

import asyncio
from decimal import Decimal
import pathlib
import sys

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlmodel import SQLModel, select

sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from loanbook.main import app
from loanbook.database import get_session
from loanbook.models import User, Installment, Client
from loanbook.auth import get_password_hash

LOAN = {
    "full_name": "Maria Souza",
    "address": "Rua das Flores, 100",
    "rg": "12.345.678-9",
    "cpf": "123.456.789-09",
    "phone": "(11) 98765-4321",
    "amount": "100.00",
    "interest_rate": "10",
    "installments_count": 12,
    "first_due_date": "2024-01-31",
}


async def _setup_test_db():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    TestSession = async_sessionmaker(engine, expire_on_commit=False)

    async def override_get_session():
        async with TestSession() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    async with TestSession() as session:
        session.add(
            User(
                name="Lender",
                email="lender@example.com",
                password_hash=get_password_hash("lenderpass"),
                role="admin",
            )
        )
        session.add(
            User(
                name="Other",
                email="other@example.com",
                password_hash=get_password_hash("otherpass"),
            )
        )
        await session.commit()

    return TestSession


async def _headers(client: AsyncClient, email: str, password: str) -> dict:
    resp = await client.post("/login", json={"email": email, "password": password})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def test_register_loan_builds_schedule():
    async def run():
        TestSession = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _headers(client, "lender@example.com", "lenderpass")
            resp = await client.post("/loans/", json=LOAN, headers=headers)
            assert resp.status_code == 200
            loan = resp.json()
            assert Decimal(loan["original_amount"]) == Decimal("100")
            assert Decimal(loan["interest_rate"]) == Decimal("10")
            assert Decimal(loan["amount"]) == Decimal("110.00")
            assert loan["installments_count"] == 12

            installments = loan["installments"]
            assert [i["installment_number"] for i in installments] == list(range(1, 13))
            assert all(Decimal(i["amount"]) == Decimal("9.17") for i in installments)
            assert all(not i["paid"] for i in installments)
            assert [i["due_date"] for i in installments[:4]] == [
                "2024-01-31",
                "2024-02-29",
                "2024-03-31",
                "2024-04-30",
            ]
            assert installments[-1]["due_date"] == "2024-12-31"
            assert loan["verification"] is None

        async with TestSession() as session:
            client_row = (await session.execute(select(Client))).scalar_one()
            assert client_row.cpf == "12345678909"
            assert client_row.phone == "11987654321"
            count = len((await session.execute(select(Installment))).scalars().all())
            assert count == 12

    asyncio.run(run())


def test_loan_status_as_of_a_given_day():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _headers(client, "lender@example.com", "lenderpass")
            loan_id = (await client.post("/loans/", json=LOAN, headers=headers)).json()["id"]

            resp = await client.get(
                f"/loans/{loan_id}", params={"as_of": "2024-01-31"}, headers=headers
            )
            assert resp.json()["status"] == "on_time"
            assert resp.json()["overdue_count"] == 0

            resp = await client.get(
                f"/loans/{loan_id}", params={"as_of": "2024-03-15"}, headers=headers
            )
            data = resp.json()
            assert data["status"] == "overdue"
            assert data["overdue_count"] == 2
            assert Decimal(data["overdue_amount"]) == Decimal("18.34")
            assert data["paid_count"] == 0
            assert Decimal(data["remaining_amount"]) == Decimal("110.00")

    asyncio.run(run())


def test_pay_installments_until_paid_off():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _headers(client, "lender@example.com", "lenderpass")
            payload = dict(LOAN, amount="300", interest_rate="0", installments_count=3)
            loan_id = (await client.post("/loans/", json=payload, headers=headers)).json()["id"]

            resp = await client.post(
                f"/loans/{loan_id}/installments/1/pay",
                json={"paid_at": "2024-01-30T10:00:00"},
                headers=headers,
            )
            assert resp.status_code == 200
            assert resp.json()["paid"] is True
            assert resp.json()["paid_at"].startswith("2024-01-30T10:00:00")

            # Paying again keeps the first payment time
            resp = await client.post(
                f"/loans/{loan_id}/installments/1/pay", headers=headers
            )
            assert resp.status_code == 200
            assert resp.json()["paid_at"].startswith("2024-01-30T10:00:00")

            resp = await client.get(
                f"/loans/{loan_id}", params={"as_of": "2024-02-10"}, headers=headers
            )
            data = resp.json()
            assert data["status"] == "on_time"
            assert data["paid_count"] == 1
            assert Decimal(data["paid_amount"]) == Decimal("100.00")
            assert Decimal(data["remaining_amount"]) == Decimal("200.00")

            for number in (2, 3):
                resp = await client.post(
                    f"/loans/{loan_id}/installments/{number}/pay", headers=headers
                )
                assert resp.status_code == 200

            resp = await client.get(
                f"/loans/{loan_id}", params={"as_of": "2030-01-01"}, headers=headers
            )
            assert resp.json()["status"] == "paid_off"
            assert Decimal(resp.json()["remaining_amount"]) == Decimal("0")

            resp = await client.post(
                f"/loans/{loan_id}/installments/4/pay", headers=headers
            )
            assert resp.status_code == 404

    asyncio.run(run())


def test_same_cpf_reuses_client():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _headers(client, "lender@example.com", "lenderpass")
            first = (await client.post("/loans/", json=LOAN, headers=headers)).json()
            second_payload = dict(
                LOAN, full_name="Maria S.", cpf="12345678909", amount="50"
            )
            second = (
                await client.post("/loans/", json=second_payload, headers=headers)
            ).json()
            assert first["client_id"] == second["client_id"]
            assert first["id"] != second["id"]

            resp = await client.get(f"/clients/{first['client_id']}", headers=headers)
            data = resp.json()
            assert data["full_name"] == "Maria Souza"
            assert [l["id"] for l in data["loans"]] == [second["id"], first["id"]]

            # Another account holder registering the same CPF gets its own client
            other = await _headers(client, "other@example.com", "otherpass")
            third = (await client.post("/loans/", json=LOAN, headers=other)).json()
            assert third["client_id"] != first["client_id"]

    asyncio.run(run())


def test_invalid_loan_terms_are_rejected():
    async def run():
        TestSession = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _headers(client, "lender@example.com", "lenderpass")
            for override in (
                {"amount": "0"},
                {"amount": "-10"},
                {"interest_rate": "100.5"},
                {"interest_rate": "-1"},
                {"installments_count": 0},
                {"installments_count": 49},
                {"cpf": "123.456"},
                {"full_name": "Al"},
                {"phone": "12345"},
            ):
                resp = await client.post(
                    "/loans/", json=dict(LOAN, **override), headers=headers
                )
                assert resp.status_code == 422, override

        async with TestSession() as session:
            assert (await session.execute(select(Client))).first() is None

    asyncio.run(run())


def test_loans_are_scoped_to_their_owner():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _headers(client, "lender@example.com", "lenderpass")
            loan_id = (await client.post("/loans/", json=LOAN, headers=headers)).json()["id"]

            other = await _headers(client, "other@example.com", "otherpass")
            resp = await client.get(f"/loans/{loan_id}", headers=other)
            assert resp.status_code == 404
            resp = await client.post(
                f"/loans/{loan_id}/installments/1/pay", headers=other
            )
            assert resp.status_code == 404
            resp = await client.delete(f"/loans/{loan_id}", headers=other)
            assert resp.status_code == 404

            resp = await client.get(f"/loans/{loan_id}")
            assert resp.status_code == 401
            resp = await client.get(f"/loans/{loan_id}", headers=headers)
            assert resp.status_code == 200

    asyncio.run(run())


def test_deleting_last_loan_removes_client():
    async def run():
        TestSession = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _headers(client, "lender@example.com", "lenderpass")
            first = (await client.post("/loans/", json=LOAN, headers=headers)).json()
            second = (
                await client.post("/loans/", json=dict(LOAN, amount="20"), headers=headers)
            ).json()
            client_id = first["client_id"]

            resp = await client.delete(f"/loans/{first['id']}", headers=headers)
            assert resp.status_code == 200
            assert resp.json() == {
                "loan_id": first["id"],
                "client_id": client_id,
                "client_removed": False,
            }
            resp = await client.get(f"/loans/{first['id']}", headers=headers)
            assert resp.status_code == 404

            resp = await client.delete(f"/loans/{second['id']}", headers=headers)
            assert resp.json()["client_removed"] is True
            resp = await client.get(f"/clients/{client_id}", headers=headers)
            assert resp.status_code == 404

        async with TestSession() as session:
            assert (await session.execute(select(Installment))).first() is None

    asyncio.run(run())


def test_delete_loan_can_keep_client():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _headers(client, "lender@example.com", "lenderpass")
            loan = (await client.post("/loans/", json=LOAN, headers=headers)).json()
            resp = await client.delete(
                f"/loans/{loan['id']}",
                params={"remove_orphan_client": "false"},
                headers=headers,
            )
            assert resp.json()["client_removed"] is False

            resp = await client.get(f"/clients/{loan['client_id']}", headers=headers)
            assert resp.status_code == 200
            assert resp.json()["status"] == "no_loans"
            assert resp.json()["loans"] == []

    asyncio.run(run())


def test_stored_total_matches_stored_terms():
    async def run():
        await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            headers = await _headers(client, "lender@example.com", "lenderpass")
            for override in ({"interest_rate": "33.335"}, {"amount": "1000.005"}):
                payload = {**LOAN, "amount": "1000.00", "installments_count": 1, **override}
                resp = await client.post("/loans/", json=payload, headers=headers)
                assert resp.status_code == 422, override

            payload = dict(
                LOAN, amount="1000.00", interest_rate="33.33", installments_count=1
            )
            resp = await client.post("/loans/", json=payload, headers=headers)
            assert resp.status_code == 200
            loan = resp.json()
            principal = Decimal(loan["original_amount"])
            rate = Decimal(loan["interest_rate"])
            assert Decimal(loan["amount"]) == Decimal("1333.30")
            assert Decimal(loan["amount"]) == principal * (1 + rate / 100)

    asyncio.run(run())
