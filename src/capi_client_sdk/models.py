from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

# Amounts travel as JSON numbers; the backend rejects decimal strings.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class WireModel(BaseModel):
    """Base for payloads exchanged with the backend (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    def to_payload(self, *, exclude: set[str] | None = None) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True, exclude=exclude)


class Entity(WireModel):
    id: str


class SubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PENDING = "PENDING"
    CANCELED = "CANCELED"
    FREE = "FREE"
    TRIAL = "TRIAL"


class TransactionType(str, Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    SCHEDULED = "SCHEDULED"


class PaymentMethod(str, Enum):
    PIX = "Pix"
    CASH = "Dinheiro"
    CREDIT = "Crédito"
    DEBIT = "Débito"
    BOLETO = "Boleto"
    OTHER = "Outro"


class PipelineStage(str, Enum):
    LEAD = "LEAD"
    NEGOTIATION = "NEGOCIACAO"
    CLOSED = "FECHADO"
    LOST = "PERDIDO"


class ServiceOrderStatus(str, Enum):
    OPEN = "ABERTO"
    ANALYSIS = "EM_ANALISE"
    WAITING_PART = "AGUARDANDO_PECA"
    DONE = "CONCLUIDO"
    DELIVERED = "ENTREGUE"


class DeletionKind(str, Enum):
    CUSTOMER = "CUSTOMER"
    PRODUCT = "PRODUCT"
    SERVICE = "SERVICE"
    SUPPLIER = "SUPPLIER"
    TRANSACTION = "TRANSACTION"
    CLOSING = "CLOSING"
    BANK_ACCOUNT = "BANK_ACCOUNT"


class User(WireModel):
    id: str
    name: str = ""
    email: str = ""
    phone: str | None = None
    tax_id: str | None = None
    role: str | None = None
    store_id: str | None = None
    active_store_id: str | None = None
    store_name: str | None = None
    status: str | None = None
    subscription_status: SubscriptionStatus | None = None
    trial_ends_at: str | None = None
    next_billing_at: str | None = None
    member_since: str | None = None

    @property
    def resolved_store_id(self) -> str | None:
        return self.active_store_id or self.store_id


class SaleItem(WireModel):
    product_id: str | None = None
    product_name: str
    quantity: int
    unit_price: Money
    total: Money


class Transaction(Entity):
    description: str
    amount: Money
    type: TransactionType
    category: str = ""
    payment_method: PaymentMethod | None = None
    date: str
    status: TransactionStatus = TransactionStatus.COMPLETED
    entity: str = ""
    items: Optional[List[SaleItem]] = None
    bank_account_id: str | None = None


class BankAccount(Entity):
    name: str
    type: str = ""
    balance: Money = Decimal("0")


class ClosingBreakdown(WireModel):
    pix: Money = Decimal("0")
    cash: Money = Decimal("0")
    card: Money = Decimal("0")
    other: Money = Decimal("0")


class CashClosing(Entity):
    date: str
    total_revenue: Money
    total_expense: Money
    balance: Money
    breakdown: ClosingBreakdown
    notes: str | None = None
    closed_by: str = ""
    closed_at: str = ""


class Product(Entity):
    name: str
    sku: str | None = None
    barcode: str | None = None
    cost_price: Money = Decimal("0")
    sale_price: Money = Decimal("0")
    stock: int = 0
    min_stock: int = 0
    expiry_date: str | None = None


class CustomerAccountItem(WireModel):
    id: str
    date: str
    description: str
    amount: Money


class CustomerAccount(Entity):
    name: str
    phone: str | None = None
    balance: Money = Decimal("0")
    items: List[CustomerAccountItem] = Field(default_factory=list)
    last_update: str | None = None
    pipeline_stage: PipelineStage | None = None


class Supplier(Entity):
    name: str
    contact_name: str | None = None
    email: str | None = None
    phone: str | None = None
    category: str | None = None
    notes: str | None = None


class ServiceOrder(Entity):
    customer_id: str
    customer_name: str
    device: str | None = None
    description: str
    status: ServiceOrderStatus = ServiceOrderStatus.OPEN
    parts_total: Money = Decimal("0")
    labor_total: Money = Decimal("0")
    total: Money = Decimal("0")
    open_date: str | None = None


class FinancialSummary(BaseModel):
    revenue: Money
    expenses: Money
    profit: Money


class SessionData(BaseModel):
    user: Optional[User] = None
    access_token: str | None = None
    env_name: str | None = None


RESOURCES: dict[str, type[Entity]] = {
    "transactions": Transaction,
    "customers": CustomerAccount,
    "products": Product,
    "suppliers": Supplier,
    "service-orders": ServiceOrder,
    "bank-accounts": BankAccount,
    "cash-closings": CashClosing,
}

DELETION_RESOURCES: dict[DeletionKind, str] = {
    DeletionKind.CUSTOMER: "customers",
    DeletionKind.PRODUCT: "products",
    DeletionKind.SERVICE: "service-orders",
    DeletionKind.SUPPLIER: "suppliers",
    DeletionKind.TRANSACTION: "transactions",
    DeletionKind.CLOSING: "cash-closings",
    DeletionKind.BANK_ACCOUNT: "bank-accounts",
}
