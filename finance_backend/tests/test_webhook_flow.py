"""
End-to-end API Tests.

Webhook ingestion, dead-letter queue retry, report endpoints (auth,
caching) and revenue queries.
"""

import pytest
from datetime import date
from sqlalchemy import select, func

from finance_backend.app.core.config import settings
from finance_backend.app.models.account import Account
from finance_backend.app.models.automatic_revenue import AutomaticRevenue
from finance_backend.app.models.dlq import DeadLetterQueue, DLQStatus
from finance_backend.app.models.ledger_enums import AccountType

JANUARY = {"from": "2024-01-01", "to": "2024-01-31"}


def webhook_body(payment_id="pay_001", value=50000, event="PAYMENT_CONFIRMED", status="CONFIRMED",
                 payment_date="2024-01-15"):
    return {
        "event": event,
        "id": f"evt_{payment_id}",
        "payment": {
            "id": payment_id,
            "customer": "cus_001",
            "value": value,
            "description": "Corte + barba",
            "date": payment_date,
            "billingType": "PIX",
            "status": status,
        },
    }


async def revenue_count(db_session):
    return (await db_session.execute(select(func.count(AutomaticRevenue.id)))).scalar()


# Webhook

@pytest.mark.asyncio
async def test_confirmed_payment_webhook(client, db_session, accounts):
    response = await client.post("/v1/webhooks/asaas", json=webhook_body())

    assert response.status_code == 200
    body = response.json()
    assert body["received"] is True
    assert body["processed"] is True
    assert body["result"]["success"] is True
    assert body["result"]["data"]["payment_id"] == "pay_001"
    assert body["result"]["data"]["value"] == 500.0
    assert await revenue_count(db_session) == 1


@pytest.mark.asyncio
async def test_non_confirmed_events_are_ignored(client, db_session, accounts):
    created = await client.post("/v1/webhooks/asaas", json=webhook_body(event="PAYMENT_CREATED", status="PENDING"))
    overdue = await client.post("/v1/webhooks/asaas", json=webhook_body(status="OVERDUE"))

    for response in (created, overdue):
        assert response.status_code == 200
        assert response.json()["processed"] is False
        assert response.json()["result"] is None
    assert await revenue_count(db_session) == 0


@pytest.mark.asyncio
async def test_webhook_token_is_enforced(client, accounts, monkeypatch):
    monkeypatch.setattr(settings, "asaas_webhook_token", "s3cr3t")

    missing = await client.post("/v1/webhooks/asaas", json=webhook_body())
    wrong = await client.post("/v1/webhooks/asaas", json=webhook_body(), headers={"asaas-access-token": "nope"})
    right = await client.post("/v1/webhooks/asaas", json=webhook_body(), headers={"asaas-access-token": "s3cr3t"})

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert wrong.json()["message"] == "Token de webhook inválido"
    assert right.status_code == 200
    assert right.json()["processed"] is True


@pytest.mark.asyncio
async def test_invalid_payload_is_rejected(client):
    response = await client.post("/v1/webhooks/asaas", json={"event": "PAYMENT_CONFIRMED"})

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_duplicate_delivery_is_not_parked(client, db_session, accounts):
    await client.post("/v1/webhooks/asaas", json=webhook_body())
    response = await client.post("/v1/webhooks/asaas", json=webhook_body())

    result = response.json()["result"]
    assert result["success"] is False
    assert result["error_kind"] == "DuplicateRevenue"
    dlq = (await db_session.execute(select(func.count(DeadLetterQueue.id)))).scalar()
    assert dlq == 0


# Dead-letter queue

@pytest.mark.asyncio
async def test_failed_delivery_is_parked_and_retried(client, db_session, admin_headers):
    # No chart of accounts yet: the delivery fails and waits for an operator
    response = await client.post("/v1/webhooks/asaas", json=webhook_body())
    assert response.json()["result"]["error_kind"] == "AccountNotFound"

    listing = await client.get("/v1/admin/ops/dlq", headers=admin_headers)
    assert listing.status_code == 200
    items = listing.json()
    assert len(items) == 1
    assert items[0]["status"] == "FAILED"
    assert items[0]["error_kind"] == "AccountNotFound"
    assert items[0]["payload"]["event"]["payment"]["id"] == "pay_001"
    dlq_id = items[0]["id"]

    db_session.add_all([
        Account(code="1.1.1.1", name="CAIXA", account_type=AccountType.ASSET, level=4),
        Account(code="4.1.1.1", name="RECEITA DE SERVIÇOS", account_type=AccountType.REVENUE, level=4),
    ])
    await db_session.commit()

    retry = await client.post(f"/v1/admin/ops/dlq/{dlq_id}/retry", headers=admin_headers)
    assert retry.status_code == 200
    assert retry.json()["success"] is True
    assert retry.json()["data"]["value"] == 500.0

    item = (await db_session.execute(
        select(DeadLetterQueue).where(DeadLetterQueue.id == dlq_id).execution_options(populate_existing=True)
    )).scalar_one()
    assert item.status == DLQStatus.PROCESSED
    assert await revenue_count(db_session) == 1

    again = await client.post(f"/v1/admin/ops/dlq/{dlq_id}/retry", headers=admin_headers)
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_retry_archives_after_max_attempts(client, db_session, admin_headers, monkeypatch):
    monkeypatch.setattr(settings, "dlq_max_retries", 2)
    await client.post("/v1/webhooks/asaas", json=webhook_body())
    dlq_id = (await client.get("/v1/admin/ops/dlq", headers=admin_headers)).json()[0]["id"]

    first = await client.post(f"/v1/admin/ops/dlq/{dlq_id}/retry", headers=admin_headers)
    second = await client.post(f"/v1/admin/ops/dlq/{dlq_id}/retry", headers=admin_headers)

    assert first.json()["success"] is False
    assert second.json()["success"] is False
    items = (await client.get("/v1/admin/ops/dlq", headers=admin_headers)).json()
    assert items[0]["retry_count"] == 2
    assert items[0]["status"] == "ARCHIVED"


@pytest.mark.asyncio
async def test_dlq_is_admin_only(client, manager_headers):
    assert (await client.get("/v1/admin/ops/dlq", headers=manager_headers)).status_code == 403
    assert (await client.post("/v1/admin/ops/dlq/1/retry", headers=manager_headers)).status_code == 403


@pytest.mark.asyncio
async def test_retry_unknown_item(client, admin_headers):
    response = await client.post("/v1/admin/ops/dlq/404/retry", headers=admin_headers)
    assert response.status_code == 404


# Reports

@pytest.mark.asyncio
async def test_reports_require_finance_role(client, barber_headers):
    body = {"period": JANUARY}

    missing = await client.post("/v1/reports/dre", json=body)
    invalid = await client.post("/v1/reports/dre", json=body, headers={"Authorization": "Bearer not-a-jwt"})
    barber = await client.post("/v1/reports/dre", json=body, headers=barber_headers)

    assert missing.status_code in (401, 403)
    assert invalid.status_code == 401
    assert barber.status_code == 403


@pytest.mark.asyncio
async def test_dre_endpoint_is_cached_until_revenue_arrives(client, accounts, add_entry, manager_headers):
    await client.post("/v1/webhooks/asaas", json=webhook_body("pay_001", 50000))

    first = await client.post("/v1/reports/dre", json={"period": JANUARY}, headers=manager_headers)
    assert first.status_code == 200
    assert first.json()["data"]["receitas"]["receita_bruta"] == 500.0
    assert first.json()["data"]["resultado"]["lucro_liquido"] == 375.0

    # Booked without going through the pipeline: no invalidation
    await add_entry(accounts["1.1.1.1"], accounts["4.1.1.1"], 100, date(2024, 1, 20))
    cached = await client.post("/v1/reports/dre", json={"period": JANUARY}, headers=manager_headers)
    assert cached.json()["data"]["receitas"]["receita_bruta"] == 500.0

    await client.post("/v1/webhooks/asaas", json=webhook_body("pay_002", 25000))
    fresh = await client.post("/v1/reports/dre", json={"period": JANUARY}, headers=manager_headers)
    assert fresh.json()["data"]["receitas"]["receita_bruta"] == 850.0


@pytest.mark.asyncio
async def test_clear_cache_endpoint(client, redis_client_session, admin_headers):
    response = await client.post("/v1/admin/ops/clear-cache", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["cleared"] is True
    assert redis_client_session.store["report-cache-version:/relatorios/financeiro"] == "1"


@pytest.mark.asyncio
async def test_report_endpoints(client, accounts, manager_headers):
    await client.post("/v1/webhooks/asaas", json=webhook_body("pay_001", 50000))

    comparison = await client.post(
        "/v1/reports/dre/comparison",
        json={"current": JANUARY, "previous": {"from": "2023-12-01", "to": "2023-12-31"}},
        headers=manager_headers,
    )
    assert comparison.status_code == 200
    assert comparison.json()["data"]["variations"]["receita_liquida"]["absolute"] == 500.0

    export = await client.post(
        "/v1/reports/dre/export", json={"period": JANUARY, "format": "csv"}, headers=manager_headers
    )
    assert export.json()["data"]["mime_type"] == "text/csv"

    cash_flow = await client.post(
        "/v1/reports/cash-flow", json={"period": JANUARY, "group_by": "week"}, headers=manager_headers
    )
    assert cash_flow.json()["data"]["resumo"]["total_entradas"] == 500.0

    validation = await client.post("/v1/reports/validation", json={"period": JANUARY}, headers=manager_headers)
    assert validation.json()["data"]["isValid"] is True
    assert validation.json()["data"]["summary"]["total_checks"] == 6

    audit = await client.post("/v1/reports/audit", json={"period": JANUARY}, headers=manager_headers)
    assert audit.json()["data"]["reconciliation"]["is_balanced"] is True


@pytest.mark.asyncio
@pytest.mark.parametrize("route", ["dre", "validation", "summary", "cash-flow"])
async def test_reversed_period_is_rejected(client, manager_headers, route):
    response = await client.post(
        f"/v1/reports/{route}",
        json={"period": {"from": "2024-02-01", "to": "2024-01-01"}},
        headers=manager_headers,
    )

    assert response.status_code == 422
    body = response.json()
    assert body["error_code"] == "ERR_VALIDATION"
    assert "Data final deve ser maior" in body["details"]["errors"][0]["msg"]


@pytest.mark.asyncio
async def test_summary_endpoint(client, accounts, manager_headers):
    await client.post("/v1/webhooks/asaas", json=webhook_body("pay_001", 50000))

    response = await client.post("/v1/reports/summary", json={"period": JANUARY}, headers=manager_headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["resumo"]["total_receitas"] == 500.0
    assert data["resumo"]["lucro_prejuizo"] == 375.0
    assert data["indicadores"]["rentabilidade"] == 75.0
    assert data["indicadores"]["liquidez_atual"] == 500.0


# Tenant scoping

@pytest.mark.asyncio
async def test_unit_bound_token_reads_only_its_unit(client, accounts, unit_manager_headers, admin_headers):
    await client.post("/v1/webhooks/asaas", json=webhook_body("pay_001", 50000))

    own = await client.post("/v1/reports/dre", json={"period": JANUARY}, headers=unit_manager_headers)
    assert own.status_code == 200
    assert own.json()["data"]["periodo"]["unidade_id"] == "trato"
    assert own.json()["data"]["receitas"]["receita_bruta"] == 500.0

    for route in ("dre", "summary", "cash-flow", "validation", "audit"):
        other = await client.post(
            f"/v1/reports/{route}",
            json={"period": JANUARY, "unidade_id": "outra"},
            headers=unit_manager_headers,
        )
        assert other.status_code == 403, route

    revenues = await client.get("/v1/financial/revenues?unidade_id=outra", headers=unit_manager_headers)
    stats = await client.get("/v1/financial/revenues/stats?unidade_id=outra", headers=unit_manager_headers)
    assert revenues.status_code == 403
    assert stats.status_code == 403

    # Admins are not bound to a unit
    admin = await client.post(
        "/v1/reports/dre", json={"period": JANUARY, "unidade_id": "outra"}, headers=admin_headers
    )
    assert admin.status_code == 200
    assert admin.json()["data"]["periodo"]["unidade_id"] == "outra"
    assert admin.json()["data"]["receitas"]["receita_bruta"] == 0.0


# Revenues

@pytest.mark.asyncio
async def test_revenue_listing_and_stats(client, accounts, manager_headers):
    await client.post("/v1/webhooks/asaas", json=webhook_body("pay_001", 50000))
    await client.post("/v1/webhooks/asaas", json=webhook_body("pay_002", 25000))

    listing = await client.get("/v1/financial/revenues", headers=manager_headers)
    assert listing.status_code == 200
    assert listing.json()["total"] == 2
    assert {item["payment_id"] for item in listing.json()["items"]} == {"pay_001", "pay_002"}

    filtered = await client.get("/v1/financial/revenues?payment_id=pay_002", headers=manager_headers)
    assert filtered.json()["total"] == 1
    assert filtered.json()["items"][0]["value"] == 250.0

    page = await client.get("/v1/financial/revenues?page=2&page_size=1", headers=manager_headers)
    assert len(page.json()["items"]) == 1

    stats = await client.get("/v1/financial/revenues/stats", headers=manager_headers)
    assert stats.status_code == 200
    assert stats.json()["total_count"] == 2
    assert stats.json()["total_value"] == 750.0
    assert stats.json()["by_status"] == {"processado": 2}
    assert stats.json()["last_30_days_count"] == 2


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["cache"] == "up"
