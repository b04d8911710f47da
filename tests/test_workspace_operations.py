from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from capi_client_sdk.exceptions import ServerError, StoreContextRequiredError
from capi_client_sdk.models import (
    CustomerAccount,
    DeletionKind,
    PaymentMethod,
    PipelineStage,
    Product,
    Transaction,
    TransactionType,
    User,
)
from capi_client_sdk.notifications import ToastLevel, ToastQueue
from capi_client_sdk.state import Confirmed
from capi_client_sdk.workspace import CASHBACK_DESCRIPTION, CartLine, PendingDeletion, StoreWorkspace

NOW = datetime(2026, 3, 10, 18, 0, tzinfo=timezone.utc)


def _workspace(fake_data, user: User | None, toasts: ToastQueue | None = None) -> StoreWorkspace:
    return StoreWorkspace(fake_data, user, notifier=toasts or ToastQueue(), now=lambda: NOW)


def _seed(workspace: StoreWorkspace) -> None:
    workspace.store["customers"].load(
        [
            CustomerAccount(id="c1", name="Maria Lima", balance=Decimal("50")),
            CustomerAccount(id="c2", name="João", balance=Decimal("0"), pipeline_stage=PipelineStage.LEAD),
        ]
    )
    workspace.store["products"].load(
        [
            Product(id="p1", name="Café 500g", sale_price=Decimal("10"), stock=2),
            Product(id="p2", name="Açúcar 1kg", sale_price=Decimal("5"), stock=10),
        ]
    )


def test_load_fetches_every_collection_and_skips_failures(fake_data, store_user) -> None:
    fake_data.collections = {
        "customers": [{"id": "c1", "name": "Maria", "balance": 12.5}],
        "products": [{"id": "p1", "name": "Café", "stock": 3}, {"id": "broken"}],
    }
    fake_data.fail("fetch", "transactions", ServerError(code="DOWN", message="", status_code=500))
    fake_data.fail("fetch", "suppliers", OSError("socket closed"))
    workspace = _workspace(fake_data, store_user)

    asyncio.run(workspace.load())

    fetched = sorted(call[1] for call in fake_data.calls_for("fetch"))
    assert fetched == sorted(
        ["transactions", "customers", "products", "suppliers", "service-orders", "bank-accounts", "cash-closings"]
    )
    assert all(call[2] == "store-1" for call in fake_data.calls_for("fetch"))
    assert workspace.customers[0].balance == Decimal("12.5")
    assert [p.id for p in workspace.products] == ["p1"]
    assert workspace.transactions == []


def test_load_requires_store_context(fake_data) -> None:
    workspace = _workspace(fake_data, User(id="u", email="x@example.com"))

    with pytest.raises(StoreContextRequiredError):
        asyncio.run(workspace.load())

    assert fake_data.calls == []


def test_active_store_takes_precedence(fake_data, store_user) -> None:
    user = store_user.model_copy(update={"active_store_id": "store-2"})

    assert _workspace(fake_data, user).store_id == "store-2"


def test_new_income_transaction_takes_items_out_of_stock(fake_data, store_user) -> None:
    workspace = _workspace(fake_data, store_user)
    _seed(workspace)

    outcome = asyncio.run(
        workspace.save_transaction(
            {
                "description": "Venda balcão",
                "amount": Decimal("30"),
                "type": TransactionType.INCOME,
                "date": NOW.isoformat(),
                "items": [{"product_name": "café", "quantity": 3, "unit_price": "10", "total": "30"}],
            }
        )
    )

    assert outcome.ok
    created_payload = fake_data.calls_for("create", "transactions")[0][2]
    assert created_payload["userId"] == "user-1"
    assert created_payload["items"][0]["productName"] == "café"
    assert fake_data.calls_for("update", "products") == [("update", "products", ("p1", {"stock": 0}))]
    assert workspace.store["products"].get("p1").stock == 0
    assert workspace.transactions[0].id == outcome.entity.id


def test_existing_transaction_is_updated_without_side_effects(fake_data, store_user) -> None:
    workspace = _workspace(fake_data, store_user)
    _seed(workspace)
    existing = Transaction(
        id="t1",
        description="Aluguel",
        amount=Decimal("900"),
        type=TransactionType.EXPENSE,
        date=NOW.isoformat(),
    )
    workspace.store["transactions"].load([existing])

    outcome = asyncio.run(
        workspace.save_transaction(existing.model_copy(update={"amount": Decimal("950")}), is_debt_payment=True)
    )

    assert outcome.ok
    assert fake_data.calls_for("create") == []
    assert [call[1] for call in fake_data.calls] == ["transactions"]
    assert workspace.transactions[0].amount == Decimal("950")


def test_debt_payment_lowers_balance_with_floor_and_records_item(fake_data, store_user) -> None:
    workspace = _workspace(fake_data, store_user)
    _seed(workspace)

    asyncio.run(
        workspace.save_transaction(
            {
                "description": "Parcela março",
                "amount": Decimal("80"),
                "type": TransactionType.INCOME,
                "date": NOW.isoformat(),
                "entity": "maria lima",
            },
            is_debt_payment=True,
        )
    )

    customer = workspace.store["customers"].get("c1")
    assert customer.balance == Decimal("0")
    assert customer.items[-1].description == "Pagamento: Parcela março"
    assert customer.items[-1].amount == Decimal("-80")


def test_failed_transaction_skips_secondary_effects(fake_data, store_user) -> None:
    workspace = _workspace(fake_data, store_user)
    _seed(workspace)
    fake_data.fail("create", "transactions", ServerError(code="DOWN", message="", status_code=500))

    outcome = asyncio.run(
        workspace.finalize_sale(
            [CartLine(product=workspace.store["products"].get("p1"), quantity=1)],
            Decimal("10"),
            PaymentMethod.PIX,
            customer_id="c1",
            cashback_amount=Decimal("0.50"),
        )
    )

    assert not outcome.ok
    assert fake_data.calls_for("update") == []
    assert workspace.transactions == []


def test_finalize_sale_records_sale_stock_and_cashback(fake_data, store_user) -> None:
    workspace = _workspace(fake_data, store_user)
    _seed(workspace)
    products = workspace.store["products"]

    outcome = asyncio.run(
        workspace.finalize_sale(
            [CartLine(product=products.get("p1"), quantity=1), CartLine(product=products.get("p2"), quantity=4)],
            Decimal("30"),
            PaymentMethod.PIX,
            customer_id="c1",
            cashback_amount=Decimal("1.50"),
        )
    )

    sale = outcome.entity
    assert sale.description == "Venda PDV (2 itens)"
    assert sale.entity == "Maria Lima"
    assert sale.category == "Vendas"
    assert [item.total for item in sale.items] == [Decimal("10"), Decimal("20")]
    assert products.get("p1").stock == 1
    assert products.get("p2").stock == 6
    customer = workspace.store["customers"].get("c1")
    assert customer.balance == Decimal("48.50")
    assert customer.items[-1].description == CASHBACK_DESCRIPTION
    assert customer.items[-1].amount == Decimal("-1.50")


def test_cashback_applies_to_the_balance_after_the_sale_settles(fake_data, store_user) -> None:
    workspace = _workspace(fake_data, store_user)
    _seed(workspace)
    products = workspace.store["products"]

    async def _run():
        release = asyncio.Event()
        fake_data.gate("create", release)
        sale = asyncio.create_task(
            workspace.finalize_sale(
                [CartLine(product=products.get("p1"), quantity=1)],
                Decimal("10"),
                PaymentMethod.PIX,
                customer_id="c1",
                cashback_amount=Decimal("1.50"),
            )
        )
        await asyncio.sleep(0)
        await workspace.register_debt("Maria Lima", Decimal("20"), "Pão")
        release.set()
        return await sale

    outcome = asyncio.run(_run())

    assert outcome.ok
    customer = workspace.store["customers"].get("c1")
    assert customer.balance == Decimal("68.50")
    assert [item.description for item in customer.items] == ["Pão", CASHBACK_DESCRIPTION]


def test_walk_in_sale_uses_default_entity(fake_data, store_user) -> None:
    workspace = _workspace(fake_data, store_user)
    _seed(workspace)

    outcome = asyncio.run(
        workspace.finalize_sale(
            [CartLine(product=workspace.store["products"].get("p2"), quantity=1)],
            5,
            PaymentMethod.CASH,
            notes="Balcão",
        )
    )

    assert outcome.entity.entity == "Consumidor Final"
    assert outcome.entity.description == "Balcão"
    assert fake_data.calls_for("update", "customers") == []


def test_add_customer_sets_lead_stage_only_for_crm(fake_data, store_user) -> None:
    workspace = _workspace(fake_data, store_user)

    lead = asyncio.run(workspace.add_customer("Lead", "1199", origin="CRM"))
    account = asyncio.run(workspace.add_customer("Conta", "1198"))

    assert lead.entity.pipeline_stage == PipelineStage.LEAD
    assert account.entity.pipeline_stage is None
    assert "pipelineStage" not in fake_data.calls_for("create", "customers")[1][2]


def test_add_customer_item_adds_to_balance(fake_data, store_user) -> None:
    workspace = _workspace(fake_data, store_user)
    _seed(workspace)

    outcome = asyncio.run(workspace.add_customer_item("c1", "Compra fiado", Decimal("25")))

    assert outcome.ok
    assert outcome.entity.balance == Decimal("75")
    assert outcome.entity.items[-1].description == "Compra fiado"
    assert asyncio.run(workspace.add_customer_item("missing", "x", 1)) is None


def test_settle_account_receives_balance_and_closes_account(fake_data, store_user) -> None:
    workspace = _workspace(fake_data, store_user)
    _seed(workspace)

    outcome = asyncio.run(workspace.settle_account("c1", PaymentMethod.PIX))

    assert outcome.ok
    receipt = workspace.transactions[0]
    assert receipt.description == "Recebimento de Conta: Maria Lima"
    assert receipt.amount == Decimal("50")
    assert receipt.type == TransactionType.INCOME
    customer = workspace.store["customers"].get("c1")
    assert customer.balance == Decimal("0")
    assert customer.items == []
    assert customer.pipeline_stage == PipelineStage.CLOSED


def test_settle_account_keeps_account_when_receipt_fails(fake_data, store_user) -> None:
    workspace = _workspace(fake_data, store_user)
    _seed(workspace)
    fake_data.fail("create", "transactions", ServerError(code="DOWN", message="", status_code=500))
    toasts = workspace.notifier

    asyncio.run(workspace.settle_account("c1", PaymentMethod.PIX))

    assert workspace.store["customers"].get("c1").balance == Decimal("50")
    assert fake_data.calls_for("update") == []
    assert toasts.messages(ToastLevel.ERROR) == ["Erro ao fechar conta."]


def test_register_debt_updates_named_customer_or_creates_one(fake_data, store_user) -> None:
    workspace = _workspace(fake_data, store_user)
    _seed(workspace)

    asyncio.run(workspace.register_debt("MARIA LIMA", Decimal("20"), "Pão"))
    created = asyncio.run(workspace.register_debt("Pedro", Decimal("15"), "Leite"))

    assert workspace.store["customers"].get("c1").balance == Decimal("70")
    assert created.entity.name == "Pedro"
    assert created.entity.balance == Decimal("15")
    assert created.entity.items[0].description == "Leite"


def test_close_register_builds_closing_from_the_day(fake_data, store_user) -> None:
    workspace = _workspace(fake_data, store_user)

    def tx(tx_id: str, amount: str, method: PaymentMethod | None, day: str = "2026-03-10", kind=TransactionType.INCOME):
        return Transaction(
            id=tx_id,
            description=tx_id,
            amount=Decimal(amount),
            type=kind,
            payment_method=method,
            date=f"{day}T12:00:00Z",
        )

    workspace.store["transactions"].load(
        [
            tx("t1", "100", PaymentMethod.PIX),
            tx("t2", "50", PaymentMethod.CASH),
            tx("t3", "30", PaymentMethod.CREDIT),
            tx("t4", "20", PaymentMethod.BOLETO),
            tx("t5", "40", None, kind=TransactionType.EXPENSE),
            tx("t6", "999", PaymentMethod.PIX, day="2026-03-09"),
        ]
    )

    outcome = asyncio.run(workspace.close_register(date(2026, 3, 10), notes="ok"))

    payload = fake_data.calls_for("create", "cash-closings")[0][2]
    assert payload["totalRevenue"] == 200.0
    assert payload["totalExpense"] == 40.0
    assert payload["balance"] == 160.0
    assert payload["breakdown"] == {"pix": 100.0, "cash": 50.0, "card": 30.0, "other": 20.0}
    assert payload["closedBy"] == "Ana Souza"
    assert outcome.entity.date == "2026-03-10"


def test_delete_flow_request_cancel_and_confirm(fake_data, store_user) -> None:
    workspace = _workspace(fake_data, store_user)
    _seed(workspace)

    pending = workspace.request_delete("p2", "PRODUCT")
    assert pending == PendingDeletion(id="p2", kind=DeletionKind.PRODUCT)
    workspace.cancel_delete()
    assert workspace.pending_deletion is None
    assert asyncio.run(workspace.confirm_delete()) is None

    workspace.request_delete("p2", DeletionKind.PRODUCT)
    outcome = asyncio.run(workspace.confirm_delete())

    assert outcome.ok
    assert fake_data.calls_for("delete") == [("delete", "products", "p2")]
    assert [p.id for p in workspace.products] == ["p1"]
    assert workspace.pending_deletion is None


def test_failed_delete_restores_entity_and_clears_request(fake_data, store_user) -> None:
    workspace = _workspace(fake_data, store_user)
    _seed(workspace)
    fake_data.fail("delete", "customers", ServerError(code="DOWN", message="", status_code=500))

    workspace.request_delete("c1", DeletionKind.CUSTOMER)
    asyncio.run(workspace.confirm_delete())

    assert [c.id for c in workspace.customers] == ["c1", "c2"]
    assert workspace.pending_deletion is None
    assert workspace.notifier.messages(ToastLevel.ERROR) == ["Erro ao excluir item."]


def test_read_models(fake_data, store_user) -> None:
    workspace = _workspace(fake_data, store_user)
    _seed(workspace)
    credit = CustomerAccount(id="c3", name="Crédito", balance=Decimal("-5"), pipeline_stage=PipelineStage.LEAD)
    workspace.store["customers"].replace((*workspace.store["customers"].slots, Confirmed(credit)))
    workspace.store["transactions"].load(
        [
            Transaction(id="t1", description="v", amount=Decimal("100"), type=TransactionType.INCOME, date="2026-03-10"),
            Transaction(id="t2", description="d", amount=Decimal("30"), type=TransactionType.EXPENSE, date="2026-03-10"),
        ]
    )

    summary = workspace.financial_summary()

    assert (summary.revenue, summary.expenses, summary.profit) == (Decimal("100"), Decimal("30"), Decimal("70"))
    assert [c.id for c in workspace.credit_accounts()] == ["c1", "c3"]
    assert workspace.total_receivable() == Decimal("50")
