"""
ProLedger - Accounting API Tests

Endpoint behaviour and error mapping through the FastAPI app.
"""

import pytest
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

from app.config import settings


def base_url(tenant_id):
    return f"/api/v1/tenants/{tenant_id}/accounting"


async def setup_tenant(client, tenant_id, auto_generate=True):
    response = await client.post(f"{base_url(tenant_id)}/setup")
    assert response.status_code == 201
    if auto_generate:
        response = await client.patch(
            f"{base_url(tenant_id)}/config", json={"auto_generate_entries": True},
        )
        assert response.status_code == 200
    response = await client.get(f"{base_url(tenant_id)}/accounts", params={"active_only": False})
    return {account["code"]: account for account in response.json()}


def manual_entry(accounts, amount="250000.00", period_id=None, entry_date="2026-01-10"):
    return {
        "entry_date": entry_date,
        "description": "Consignacion bancaria",
        "period_id": period_id,
        "lines": [
            {"account_id": accounts["111005"]["id"], "debit": amount},
            {"account_id": accounts["110505"]["id"], "credit": amount},
        ],
    }


class TestHealth:

    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestSetupAndConfig:

    @pytest.mark.asyncio
    async def test_setup(self, client, tenant_id):
        response = await client.post(f"{base_url(tenant_id)}/setup")

        assert response.status_code == 201
        assert response.json()["accounts_created"] == 61

    @pytest.mark.asyncio
    async def test_setup_twice_conflicts(self, client, tenant_id):
        await client.post(f"{base_url(tenant_id)}/setup")

        response = await client.post(f"{base_url(tenant_id)}/setup")

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "ALREADY_CONFIGURED"

    @pytest.mark.asyncio
    async def test_setup_after_config_patch(self, client, tenant_id):
        response = await client.patch(
            f"{base_url(tenant_id)}/config", json={"auto_generate_entries": True},
        )
        assert response.status_code == 200

        response = await client.post(f"{base_url(tenant_id)}/setup")

        assert response.status_code == 201
        assert response.json()["accounts_created"] == 61
        config = (await client.get(f"{base_url(tenant_id)}/config")).json()
        assert config["is_configured"] is True
        assert config["auto_generate_entries"] is True

    @pytest.mark.asyncio
    async def test_config_before_setup(self, client, tenant_id):
        response = await client.get(f"{base_url(tenant_id)}/config")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_config_after_setup(self, client, tenant_id):
        accounts = await setup_tenant(client, tenant_id, auto_generate=False)

        response = await client.get(f"{base_url(tenant_id)}/config")

        data = response.json()
        assert response.status_code == 200
        assert data["is_configured"] is True
        assert data["auto_generate_entries"] is False
        assert data["cash_account_id"] == accounts["110505"]["id"]

    @pytest.mark.asyncio
    async def test_config_rejects_unknown_account(self, client, tenant_id):
        await setup_tenant(client, tenant_id)

        response = await client.patch(
            f"{base_url(tenant_id)}/config", json={"cash_account_id": str(uuid4())},
        )

        assert response.status_code == 400


class TestAccountsApi:

    @pytest.mark.asyncio
    async def test_list_by_type(self, client, tenant_id):
        await setup_tenant(client, tenant_id)

        response = await client.get(f"{base_url(tenant_id)}/accounts", params={"type": "COGS"})

        assert response.status_code == 200
        assert [a["code"] for a in response.json()] == ["6", "61", "6135", "613505"]

    @pytest.mark.asyncio
    async def test_tree(self, client, tenant_id):
        await setup_tenant(client, tenant_id)

        response = await client.get(f"{base_url(tenant_id)}/accounts/tree")

        roots = response.json()
        assert response.status_code == 200
        assert [root["code"] for root in roots] == ["1", "2", "3", "4", "5", "6"]
        disponible = roots[0]["children"][0]
        assert disponible["code"] == "11"
        assert [child["code"] for child in disponible["children"]] == ["1105", "1110"]

    @pytest.mark.asyncio
    async def test_create_and_update_account(self, client, tenant_id):
        accounts = await setup_tenant(client, tenant_id)

        response = await client.post(f"{base_url(tenant_id)}/accounts", json={
            "code": "111010",
            "name": "Banco de Occidente",
            "type": "ASSET",
            "nature": "DEBIT",
            "parent_id": accounts["1110"]["id"],
            "is_bank_account": True,
        })
        assert response.status_code == 201
        created = response.json()
        assert created["level"] == 4
        assert created["is_system_account"] is False

        response = await client.patch(
            f"{base_url(tenant_id)}/accounts/{created['id']}", json={"is_active": False},
        )
        assert response.status_code == 200
        assert response.json()["is_active"] is False

    @pytest.mark.asyncio
    async def test_list_includes_inactive_unless_filtered(self, client, tenant_id):
        accounts = await setup_tenant(client, tenant_id)
        await client.patch(
            f"{base_url(tenant_id)}/accounts/{accounts['519505']['id']}", json={"is_active": False},
        )

        everything = await client.get(f"{base_url(tenant_id)}/accounts")
        active = await client.get(f"{base_url(tenant_id)}/accounts", params={"active_only": True})

        assert len(everything.json()) == 61
        assert len(active.json()) == 60
        assert "519505" not in [account["code"] for account in active.json()]

    @pytest.mark.asyncio
    async def test_duplicate_code(self, client, tenant_id):
        await setup_tenant(client, tenant_id)

        response = await client.post(f"{base_url(tenant_id)}/accounts", json={
            "code": "110505", "name": "Caja", "type": "ASSET", "nature": "DEBIT",
        })

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_non_numeric_code(self, client, tenant_id):
        response = await client.post(f"{base_url(tenant_id)}/accounts", json={
            "code": "11-05", "name": "Caja", "type": "ASSET", "nature": "DEBIT",
        })

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_missing_account(self, client, tenant_id):
        response = await client.get(f"{base_url(tenant_id)}/accounts/{uuid4()}")

        assert response.status_code == 404


class TestPeriodsApi:

    @pytest.mark.asyncio
    async def test_create_and_list(self, client, tenant_id):
        for name, start, end in (
            ("Enero 2026", "2026-01-01", "2026-01-31"),
            ("Febrero 2026", "2026-02-01", "2026-02-28"),
        ):
            response = await client.post(f"{base_url(tenant_id)}/periods", json={
                "name": name, "start_date": start, "end_date": end,
            })
            assert response.status_code == 201
            assert response.json()["status"] == "OPEN"

        response = await client.get(f"{base_url(tenant_id)}/periods")

        assert [p["name"] for p in response.json()] == ["Febrero 2026", "Enero 2026"]

    @pytest.mark.asyncio
    async def test_overlap_conflicts(self, client, tenant_id):
        await client.post(f"{base_url(tenant_id)}/periods", json={
            "name": "Enero 2026", "start_date": "2026-01-01", "end_date": "2026-01-31",
        })

        response = await client.post(f"{base_url(tenant_id)}/periods", json={
            "name": "Otro", "start_date": "2026-01-20", "end_date": "2026-02-20",
        })

        assert response.status_code == 409
        assert response.json()["detail"]["details"]["conflicting_period"] == "Enero 2026"

    @pytest.mark.asyncio
    async def test_invalid_range(self, client, tenant_id):
        response = await client.post(f"{base_url(tenant_id)}/periods", json={
            "name": "Mal", "start_date": "2026-03-01", "end_date": "2026-02-01",
        })

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_close_blocked_by_drafts_then_closed(self, client, tenant_id):
        accounts = await setup_tenant(client, tenant_id)
        period = (await client.post(f"{base_url(tenant_id)}/periods", json={
            "name": "Enero 2026", "start_date": "2026-01-01", "end_date": "2026-01-31",
        })).json()
        entry = (await client.post(
            f"{base_url(tenant_id)}/journal-entries", json=manual_entry(accounts, period_id=period["id"]),
        )).json()

        response = await client.post(f"{base_url(tenant_id)}/periods/{period['id']}/close")
        assert response.status_code == 409
        assert response.json()["detail"]["details"]["draft_count"] == 1

        await client.post(f"{base_url(tenant_id)}/journal-entries/{entry['id']}/post")
        user_id = str(uuid4())
        response = await client.post(
            f"{base_url(tenant_id)}/periods/{period['id']}/close", headers={"X-User-ID": user_id},
        )
        assert response.status_code == 200
        closed = response.json()
        assert closed["status"] == "CLOSED"
        assert closed["closed_by_id"] == user_id
        assert closed["entry_count"] == 1

        response = await client.post(
            f"{base_url(tenant_id)}/journal-entries", json=manual_entry(accounts, period_id=period["id"]),
        )
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "PERIOD_CLOSED"

    @pytest.mark.asyncio
    async def test_missing_period(self, client, tenant_id):
        response = await client.get(f"{base_url(tenant_id)}/periods/{uuid4()}")

        assert response.status_code == 404


class TestJournalEntriesApi:

    @pytest.mark.asyncio
    async def test_create_post_void(self, client, tenant_id):
        accounts = await setup_tenant(client, tenant_id)
        user_id = str(uuid4())

        response = await client.post(
            f"{base_url(tenant_id)}/journal-entries", json=manual_entry(accounts), headers={"X-User-ID": user_id},
        )
        assert response.status_code == 201
        entry = response.json()
        assert entry["entry_number"] == "CE-00001"
        assert entry["status"] == "DRAFT"
        assert entry["created_by_id"] == user_id
        assert Decimal(entry["total_debit"]) == Decimal("250000")
        assert [line["account_code"] for line in entry["lines"]] == ["111005", "110505"]

        response = await client.post(f"{base_url(tenant_id)}/journal-entries/{entry['id']}/post")
        assert response.status_code == 200
        assert response.json()["status"] == "POSTED"

        response = await client.post(f"{base_url(tenant_id)}/journal-entries/{entry['id']}/post")
        assert response.status_code == 409

        response = await client.post(
            f"{base_url(tenant_id)}/journal-entries/{entry['id']}/void", json={"reason": "Duplicado"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "VOIDED"

        response = await client.post(
            f"{base_url(tenant_id)}/journal-entries/{entry['id']}/void", json={"reason": "Duplicado"},
        )
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "ENTRY_ALREADY_VOIDED"

    @pytest.mark.asyncio
    async def test_unbalanced_entry(self, client, tenant_id):
        accounts = await setup_tenant(client, tenant_id)
        data = manual_entry(accounts)
        data["lines"][1]["credit"] = "249000.00"

        response = await client.post(f"{base_url(tenant_id)}/journal-entries", json=data)

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "UNBALANCED_ENTRY"

    @pytest.mark.asyncio
    async def test_single_line_rejected(self, client, tenant_id):
        accounts = await setup_tenant(client, tenant_id)
        data = manual_entry(accounts)
        data["lines"] = data["lines"][:1]

        response = await client.post(f"{base_url(tenant_id)}/journal-entries", json=data)

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_invalid_user_header(self, client, tenant_id):
        accounts = await setup_tenant(client, tenant_id)

        response = await client.post(
            f"{base_url(tenant_id)}/journal-entries", json=manual_entry(accounts), headers={"X-User-ID": "nobody"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_list_paginated(self, client, tenant_id):
        accounts = await setup_tenant(client, tenant_id)
        for day in ("2026-01-05", "2026-01-06", "2026-01-07"):
            await client.post(
                f"{base_url(tenant_id)}/journal-entries", json=manual_entry(accounts, entry_date=day),
            )

        response = await client.get(
            f"{base_url(tenant_id)}/journal-entries", params={"page": 1, "limit": 2, "status": "DRAFT"},
        )

        data = response.json()
        assert response.status_code == 200
        assert data["total"] == 3
        assert data["total_pages"] == 2
        assert [e["entry_number"] for e in data["items"]] == ["CE-00003", "CE-00002"]

    @pytest.mark.asyncio
    async def test_missing_entry(self, client, tenant_id):
        response = await client.get(f"{base_url(tenant_id)}/journal-entries/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "JOURNAL_ENTRY_NOT_FOUND"


class TestEventHook:

    @pytest.mark.asyncio
    async def test_event_posts_in_background(self, client, tenant_id):
        await setup_tenant(client, tenant_id)

        response = await client.post(f"{base_url(tenant_id)}/events/purchase.received", json={
            "entry_date": "2026-01-15",
            "purchase_order_id": str(uuid4()),
            "purchase_order_number": "OC-0100",
            "subtotal": "600000",
            "tax": "114000",
            "total": "714000",
        })

        assert response.status_code == 202
        assert response.json() == {
            "event_type": "purchase.received", "accepted": True, "dispatch": "background",
        }

        entries = (await client.get(
            f"{base_url(tenant_id)}/journal-entries", params={"source": "PURCHASE"},
        )).json()
        assert entries["total"] == 1
        entry = entries["items"][0]
        assert entry["status"] == "POSTED"
        assert [(line["account_code"], Decimal(line["credit"])) for line in entry["lines"]][2:] == [
            ("236540", Decimal("15000")),
            ("220505", Decimal("699000")),
        ]

    @pytest.mark.asyncio
    async def test_event_ignored_when_auto_generation_off(self, client, tenant_id):
        await setup_tenant(client, tenant_id, auto_generate=False)

        response = await client.post(f"{base_url(tenant_id)}/events/stock.adjusted", json={
            "movement_id": str(uuid4()),
            "product_sku": "SKU-1",
            "quantity": "2",
            "cost_price": "1000",
        })

        assert response.status_code == 202
        entries = (await client.get(f"{base_url(tenant_id)}/journal-entries")).json()
        assert entries["total"] == 0

    @pytest.mark.asyncio
    async def test_unknown_event(self, client, tenant_id):
        response = await client.post(f"{base_url(tenant_id)}/events/order.shipped", json={})

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_event_payload(self, client, tenant_id):
        response = await client.post(f"{base_url(tenant_id)}/events/payment.created", json={
            "amount": "-5",
        })

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_event_dispatched_to_celery(self, client, tenant_id, monkeypatch):
        from app.tasks import accounting_tasks

        task = MagicMock()
        monkeypatch.setattr(settings, "auto_post_async", True)
        monkeypatch.setattr(accounting_tasks, "dispatch_accounting_event", task)

        response = await client.post(f"{base_url(tenant_id)}/events/stock.adjusted", json={
            "movement_id": str(uuid4()),
            "product_sku": "SKU-1",
            "quantity": "2",
            "cost_price": "1000",
        })

        assert response.status_code == 202
        assert response.json()["dispatch"] == "celery"
        event_type, payload = task.delay.call_args.args
        assert event_type == "stock.adjusted"
        assert payload["tenant_id"] == str(tenant_id)
