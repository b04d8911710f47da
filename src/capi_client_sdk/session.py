from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from .activation import SubscriptionActivation
from .auth_store import AuthStore
from .clients.auth import AuthClient
from .clients.data_client import DataClient
from .clients.payments import AbacatePayClient, BackendPaymentClient, PaymentProvider
from .config import ClientConfig
from .http_client import HttpClient, TraceContext
from .models import SessionData, User
from .notifications import Notifier, ToastQueue
from .workspace import StoreWorkspace


@dataclass
class ApiSession:
    config: ClientConfig
    auth_store: AuthStore | None = None
    trace: TraceContext | None = None
    token: str | None = None
    user: User | None = None
    notifier: Notifier = field(default_factory=ToastQueue)
    _http_client: HttpClient | None = field(default=None, init=False, repr=False)
    _payment_http: HttpClient | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.auth_store = self.auth_store or AuthStore()
        self.trace = self.trace or TraceContext()
        stored = self.auth_store.load()
        if stored and not self.token:
            self.token = stored.access_token
            self.user = stored.user

    def _http(self) -> HttpClient:
        if self._http_client is None:
            self._http_client = HttpClient(config=self.config, trace=self.trace)
        return self._http_client

    @property
    def store_id(self) -> str | None:
        return self.user.resolved_store_id if self.user else None

    def data_client(self) -> DataClient:
        return DataClient(http=self._http(), access_token=self.token, store_id=self.store_id)

    def auth_client(self) -> AuthClient:
        return AuthClient(http=self._http(), access_token=self.token, auth_store=self.auth_store)

    def payment_client(self) -> PaymentProvider:
        """AbacatePay when an API key is configured, else the backend-proxied checkout."""
        if self.config.payment_api_key:
            if self._payment_http is None:
                self._payment_http = HttpClient(
                    config=self.config,
                    trace=self.trace,
                    base_url=self.config.payment_api_base_url,
                )
            return AbacatePayClient(
                http=self._payment_http,
                access_token=self.config.payment_api_key,
                return_url=self.config.checkout_url,
            )
        return BackendPaymentClient(
            http=self._http(),
            access_token=self.token,
            checkout_url=self.config.checkout_url,
        )

    def workspace(self) -> StoreWorkspace:
        return StoreWorkspace(self.data_client(), self.user, notifier=self.notifier)

    def subscription_activation(
        self,
        *,
        open_url: Callable[[str], None] | None = None,
        on_complete: Callable[[User], None] | None = None,
    ) -> SubscriptionActivation:
        if self.user is None:
            raise RuntimeError("No authenticated user")
        auth = self.auth_client()

        def _completed(user: User) -> None:
            self.user = user
            if on_complete is not None:
                on_complete(user)

        return SubscriptionActivation.from_config(
            self.config,
            self.user,
            self.payment_client(),
            auth,
            open_url=open_url,
            on_complete=_completed,
            profile_updater=auth.update_profile,
        )

    def establish(self, token: str, user: User | None) -> None:
        self.token = token
        self.user = user
        self.auth_store.save(SessionData(access_token=self.token, user=self.user, env_name=self.config.env_name))

    def clear(self) -> None:
        self.token = None
        self.user = None
        if self.auth_store:
            self.auth_store.clear()

    async def aclose(self) -> None:
        for http in (self._http_client, self._payment_http):
            if http is not None:
                await http.aclose()
        self._http_client = None
        self._payment_http = None
