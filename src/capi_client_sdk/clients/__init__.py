from .auth import AuthClient
from .data_client import DataClient
from .payments import AbacatePayClient, BackendPaymentClient, PaymentProvider, PaymentStatus

__all__ = [
    "AbacatePayClient",
    "AuthClient",
    "BackendPaymentClient",
    "DataClient",
    "PaymentProvider",
    "PaymentStatus",
]
