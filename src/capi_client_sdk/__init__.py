from .activation import ActivationStateError, ActivationStep, SubscriptionActivation
from .auth_store import AuthStore
from .clients import AbacatePayClient, AuthClient, BackendPaymentClient, DataClient, PaymentProvider, PaymentStatus
from .config import ClientConfig, ConfigError, load_config
from .exceptions import (
    ApiError,
    CheckoutError,
    EmptyResponseError,
    NotFoundError,
    PaymentNotFoundError,
    StoreContextRequiredError,
    TransportError,
    UnauthorizedError,
    ValidationError,
)
from .finance import ClosingTotals, closing_totals, financial_summary
from .http_client import HttpClient, TraceContext
from .logger import configure_logging
from .models import (
    CashClosing,
    CustomerAccount,
    DeletionKind,
    PaymentMethod,
    PipelineStage,
    Product,
    SessionData,
    SubscriptionStatus,
    Transaction,
    TransactionType,
    User,
)
from .mutations import MutationCoordinator, MutationOutcome, MutationState
from .notifications import LoggingNotifier, ToastLevel, ToastQueue
from .session import ApiSession
from .state import Confirmed, EntityCollection, EntityStore, Pending
from .subscription import SubscriptionCheck, evaluate_subscription, trial_time_left
from .workspace import CartLine, PendingDeletion, StoreWorkspace

__all__ = [
    "AbacatePayClient",
    "ActivationStateError",
    "ActivationStep",
    "ApiError",
    "ApiSession",
    "AuthClient",
    "AuthStore",
    "BackendPaymentClient",
    "CartLine",
    "CashClosing",
    "CheckoutError",
    "ClientConfig",
    "ClosingTotals",
    "ConfigError",
    "Confirmed",
    "CustomerAccount",
    "DataClient",
    "DeletionKind",
    "EmptyResponseError",
    "EntityCollection",
    "EntityStore",
    "HttpClient",
    "LoggingNotifier",
    "MutationCoordinator",
    "MutationOutcome",
    "MutationState",
    "NotFoundError",
    "PaymentMethod",
    "PaymentNotFoundError",
    "PaymentProvider",
    "PaymentStatus",
    "Pending",
    "PendingDeletion",
    "PipelineStage",
    "Product",
    "SessionData",
    "StoreContextRequiredError",
    "StoreWorkspace",
    "SubscriptionActivation",
    "SubscriptionCheck",
    "SubscriptionStatus",
    "ToastLevel",
    "ToastQueue",
    "TraceContext",
    "Transaction",
    "TransactionType",
    "TransportError",
    "UnauthorizedError",
    "User",
    "ValidationError",
    "closing_totals",
    "configure_logging",
    "evaluate_subscription",
    "financial_summary",
    "load_config",
    "trial_time_left",
]
