from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Sequence

from pydantic import ValidationError as ModelValidationError

from .exceptions import ValidationError
from .finance import closing_totals, financial_summary
from .logger import get_logger, log_event
from .models import (
    DELETION_RESOURCES,
    RESOURCES,
    CashClosing,
    CustomerAccount,
    CustomerAccountItem,
    DeletionKind,
    Entity,
    FinancialSummary,
    PaymentMethod,
    PipelineStage,
    Product,
    SaleItem,
    Transaction,
    TransactionStatus,
    TransactionType,
    User,
)
from .mutations import AppliedCallback, DataAccessor, MutationCoordinator, MutationOutcome
from .notifications import LoggingNotifier, Notifier, ToastLevel
from .state import EntityStore

logger = get_logger(__name__)

SALES_CATEGORY = "Vendas"
WALK_IN_CUSTOMER = "Consumidor Final"
CASHBACK_DESCRIPTION = "Cashback Pix Fidelidade (Crédito)"
DELETE_FAILURE = "Erro ao excluir item."


@dataclass(frozen=True)
class PendingDeletion:
    id: str
    kind: DeletionKind


@dataclass(frozen=True)
class CartLine:
    product: Product
    quantity: int


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _money(value: Decimal | float | int | str) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _same_name(left: str | None, right: str | None) -> bool:
    return (left or "").strip().lower() == (right or "").strip().lower()


class StoreWorkspace:
    """Retail operations for the user's active store.

    Every operation is built from optimistic mutations on the workspace's
    collections; a compound operation (a sale that also moves stock and
    credits cashback) runs one mutation per affected entity. Secondary
    mutations only start after the primary one was confirmed.
    """

    def __init__(
        self,
        data: DataAccessor,
        user: User | None = None,
        *,
        store: EntityStore | None = None,
        notifier: Notifier | None = None,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.data = data
        self.user = user
        self.store = store or EntityStore()
        self.notifier = notifier or LoggingNotifier()
        self._now = now
        self.coordinator = MutationCoordinator(
            data,
            self.store,
            store_id=lambda: self.store_id,
            notifier=self.notifier,
            clock=lambda: self._now().timestamp(),
        )
        self.pending_deletion: PendingDeletion | None = None

    @property
    def store_id(self) -> str | None:
        return self.user.resolved_store_id if self.user else None

    @property
    def transactions(self) -> list[Transaction]:
        return self.store["transactions"].entities

    @property
    def customers(self) -> list[CustomerAccount]:
        return self.store["customers"].entities

    @property
    def products(self) -> list[Product]:
        return self.store["products"].entities

    async def load(self) -> None:
        """Fetch every collection of the active store concurrently."""
        store_id = self.coordinator.resolve_store_id("workspace.load")
        resources = list(RESOURCES)
        results = await asyncio.gather(
            *(self.data.fetch(store_id, resource) for resource in resources),
            return_exceptions=True,
        )
        for resource, result in zip(resources, results):
            if isinstance(result, Exception):
                log_event(
                    logger,
                    "workspace.load_failed",
                    level=logging.WARNING,
                    resource=resource,
                    error=type(result).__name__,
                    code=getattr(result, "code", None),
                    trace_id=getattr(result, "trace_id", None),
                )
                continue
            if isinstance(result, BaseException):
                raise result
            collection = self.store.collection(resource)
            entities = list(_parse_entities(collection.model, resource, result))
            async with collection.lock:
                collection.load(entities)
        log_event(logger, "workspace.loaded", store_id=store_id, counts={r: len(self.store[r]) for r in resources})

    async def save_transaction(
        self,
        transaction: Transaction | Mapping[str, Any],
        *,
        is_debt_payment: bool = False,
        on_applied: AppliedCallback | None = None,
    ) -> MutationOutcome[Transaction]:
        """Update the transaction if it is already loaded, otherwise create it.

        A newly created transaction also settles customer debt (when flagged
        as a debt payment) and takes sold items out of stock.
        """
        tx_id = transaction.id if isinstance(transaction, Entity) else transaction.get("id")
        if tx_id and self.store["transactions"].get(self.coordinator.resolve_id(tx_id)) is not None:
            if not isinstance(transaction, Transaction):
                transaction = Transaction.model_validate(transaction)
            return await self.coordinator.update("transactions", transaction, on_applied=on_applied)

        draft = _as_draft(transaction)
        if self.user is not None:
            draft.setdefault("userId", self.user.id)
        outcome = await self.coordinator.create("transactions", draft, on_applied=on_applied)
        if not outcome.ok:
            return outcome

        created: Transaction = outcome.entity
        if is_debt_payment and created.entity:
            await self._apply_debt_payment(created)
        if created.type == TransactionType.INCOME and created.items:
            await self._take_from_stock_by_name(created.items)
        return outcome

    async def finalize_sale(
        self,
        cart: Sequence[CartLine],
        total: Decimal | float,
        method: PaymentMethod,
        *,
        customer_id: str | None = None,
        notes: str | None = None,
        cashback_amount: Decimal | float | None = None,
    ) -> MutationOutcome[Transaction]:
        customer = self.store["customers"].get(customer_id) if customer_id else None
        if customer_id:
            entity = customer.name if customer is not None else "Cliente"
        else:
            entity = WALK_IN_CUSTOMER
        draft = {
            "description": notes or f"Venda PDV ({len(cart)} itens)",
            "amount": _money(total),
            "type": TransactionType.INCOME,
            "category": SALES_CATEGORY,
            "payment_method": method,
            "date": self._now().isoformat(),
            "status": TransactionStatus.COMPLETED,
            "entity": entity,
            "items": [
                SaleItem(
                    product_id=line.product.id,
                    product_name=line.product.name,
                    quantity=line.quantity,
                    unit_price=line.product.sale_price,
                    total=line.product.sale_price * line.quantity,
                )
                for line in cart
            ],
        }
        outcome = await self.coordinator.create("transactions", draft)
        if not outcome.ok:
            return outcome

        sold: dict[str, int] = {}
        for line in cart:
            sold[line.product.id] = sold.get(line.product.id, 0) + line.quantity
        await asyncio.gather(*(self._adjust_stock(product_id, -quantity) for product_id, quantity in sold.items()))

        customer = self.store["customers"].get(customer_id) if customer_id else None
        if customer is not None and cashback_amount and _money(cashback_amount) > 0:
            credit = _money(cashback_amount)
            await self._append_customer_item(
                customer,
                CASHBACK_DESCRIPTION,
                -credit,
                balance=customer.balance - credit,
            )
        return outcome

    async def add_customer(
        self,
        name: str,
        phone: str | None = None,
        *,
        origin: str = "CREDIARIO",
    ) -> MutationOutcome[CustomerAccount]:
        draft = {
            "name": name,
            "phone": phone,
            "balance": Decimal("0"),
            "items": [],
            "last_update": self._now().isoformat(),
            "pipeline_stage": PipelineStage.LEAD if origin.upper() == "CRM" else None,
        }
        return await self.coordinator.create("customers", draft, failure_message="Erro ao adicionar cliente.")

    async def add_customer_item(
        self,
        account_id: str,
        description: str,
        amount: Decimal | float,
    ) -> MutationOutcome[CustomerAccount] | None:
        account = self.store["customers"].get(self.coordinator.resolve_id(account_id))
        if account is None:
            return None
        value = _money(amount)
        return await self._append_customer_item(account, description, value, balance=account.balance + value)

    async def settle_account(self, account_id: str, method: PaymentMethod) -> MutationOutcome | None:
        """Receive the whole balance of a customer account and close it."""
        account = self.store["customers"].get(self.coordinator.resolve_id(account_id))
        if account is None:
            return None
        receipt = await self.coordinator.create(
            "transactions",
            {
                "description": f"Recebimento de Conta: {account.name}",
                "amount": account.balance,
                "type": TransactionType.INCOME,
                "category": SALES_CATEGORY,
                "payment_method": method,
                "date": self._now().isoformat(),
                "status": TransactionStatus.COMPLETED,
                "entity": account.name,
            },
            failure_message="Erro ao fechar conta.",
        )
        if not receipt.ok:
            return receipt
        closed = account.model_copy(
            update={
                "balance": Decimal("0"),
                "items": [],
                "last_update": self._now().isoformat(),
                "pipeline_stage": PipelineStage.CLOSED,
            }
        )
        return await self.coordinator.update("customers", closed, failure_message="Erro ao fechar conta.")

    async def register_debt(
        self,
        customer_name: str,
        amount: Decimal | float,
        description: str,
    ) -> MutationOutcome[CustomerAccount]:
        value = _money(amount)
        target = self.store["customers"].find(lambda c: _same_name(c.name, customer_name))
        if target is not None:
            return await self._append_customer_item(target, description, value, balance=target.balance + value)
        return await self.coordinator.create(
            "customers",
            {
                "name": customer_name,
                "balance": value,
                "items": [self._ledger_item(description, value)],
                "last_update": self._now().isoformat(),
            },
            failure_message="Erro ao salvar dívida. Verifique sua loja ou conexão.",
        )

    async def update_entity(
        self,
        resource: str,
        entity: Entity,
        *,
        on_applied: AppliedCallback | None = None,
    ) -> MutationOutcome:
        return await self.coordinator.update(resource, entity, on_applied=on_applied)

    async def close_register(
        self,
        day: date | None = None,
        *,
        closed_by: str | None = None,
        notes: str | None = None,
    ) -> MutationOutcome[CashClosing]:
        now = self._now()
        day = day or now.date()
        totals = closing_totals(self.transactions, day)
        draft = {
            "date": day.isoformat(),
            "total_revenue": totals.total_revenue,
            "total_expense": totals.total_expense,
            "balance": totals.balance,
            "breakdown": totals.breakdown,
            "notes": notes,
            "closed_by": closed_by or (self.user.name if self.user else ""),
            "closed_at": now.isoformat(),
        }
        return await self.coordinator.create("cash-closings", draft, failure_message="Erro ao salvar fechamento.")

    def request_delete(self, entity_id: str, kind: DeletionKind | str) -> PendingDeletion:
        self.pending_deletion = PendingDeletion(id=entity_id, kind=DeletionKind(kind))
        return self.pending_deletion

    def cancel_delete(self) -> None:
        self.pending_deletion = None

    async def confirm_delete(self) -> MutationOutcome | None:
        pending = self.pending_deletion
        if pending is None:
            return None
        try:
            return await self.coordinator.delete(
                DELETION_RESOURCES[pending.kind],
                pending.id,
                failure_message=DELETE_FAILURE,
            )
        except ValidationError as exc:
            log_event(logger, "workspace.delete_skipped", level=logging.WARNING, kind=pending.kind.value, code=exc.code)
            self.notifier.notify(DELETE_FAILURE, ToastLevel.ERROR)
            return None
        finally:
            self.pending_deletion = None

    def financial_summary(self) -> FinancialSummary:
        return financial_summary(self.transactions)

    def credit_accounts(self) -> list[CustomerAccount]:
        """Accounts shown on the credit (crediário) page."""
        return [c for c in self.customers if c.balance != 0 or c.pipeline_stage is None]

    def total_receivable(self) -> Decimal:
        return sum((c.balance for c in self.credit_accounts() if c.balance > 0), Decimal("0"))

    async def _apply_debt_payment(self, tx: Transaction) -> None:
        customer = self.store["customers"].find(lambda c: _same_name(c.name, tx.entity))
        if customer is None:
            log_event(logger, "workspace.debt_customer_missing", level=logging.DEBUG, entity=tx.entity)
            return
        await self._append_customer_item(
            customer,
            f"Pagamento: {tx.description}",
            -tx.amount,
            balance=max(Decimal("0"), customer.balance - tx.amount),
        )

    async def _take_from_stock_by_name(self, items: Iterable[SaleItem]) -> None:
        for item in items:
            product = _match_product(self.products, item.product_name)
            if product is not None:
                await self._adjust_stock(product.id, -item.quantity)

    async def _adjust_stock(self, product_id: str | None, delta: int) -> MutationOutcome | None:
        if not product_id:
            return None
        products = self.store["products"]
        product = products.get(product_id)
        if product is None:
            return None
        stock = max(0, product.stock + delta)
        updated = product.model_copy(update={"stock": stock})
        return await self.coordinator.update("products", updated, payload={"stock": stock})

    async def _append_customer_item(
        self,
        customer: CustomerAccount,
        description: str,
        amount: Decimal,
        *,
        balance: Decimal,
    ) -> MutationOutcome[CustomerAccount]:
        updated = customer.model_copy(
            update={
                "balance": balance,
                "items": [*customer.items, self._ledger_item(description, amount)],
                "last_update": self._now().isoformat(),
            }
        )
        return await self.coordinator.update("customers", updated, failure_message="Erro ao atualizar conta.")

    def _ledger_item(self, description: str, amount: Decimal) -> CustomerAccountItem:
        return CustomerAccountItem(
            id=uuid.uuid4().hex,
            date=self._now().isoformat(),
            description=description,
            amount=amount,
        )


def _as_draft(transaction: Transaction | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(transaction, Entity):
        return transaction.model_dump(exclude={"id"})
    return {key: value for key, value in dict(transaction).items() if key != "id"}


def _match_product(products: Iterable[Product], name: str) -> Product | None:
    wanted = name.strip().lower()
    if not wanted:
        return None
    for product in products:
        current = product.name.strip().lower()
        if current == wanted or wanted in current:
            return product
    return None


def _parse_entities(model: type[Entity], resource: str, items: list[dict[str, Any]]) -> Iterable[Entity]:
    for item in items:
        try:
            yield model.model_validate(item)
        except ModelValidationError as exc:
            log_event(
                logger,
                "workspace.invalid_entity",
                level=logging.WARNING,
                resource=resource,
                id=item.get("id") if isinstance(item, dict) else None,
                errors=exc.error_count(),
            )
