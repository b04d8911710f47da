"""Subscription activation after an out-of-band checkout.

The user pays on a provider-hosted page in another browser context; this
flow detects the payment by polling the provider and then activates the
subscription locally. States::

    INTRO -> LOADING_CHECKOUT -> WAITING_PAYMENT -> SUCCESS
    WAITING_PAYMENT -> INTRO                  (cancel or poll timeout)
    INTRO -> CHECKING -> INTRO | SUCCESS      (manual verification)

Polling runs in exactly one ``asyncio.Task`` per flow instance. Entering
``WAITING_PAYMENT`` cancels the previous task before starting a new one, and
leaving it (success, cancel, timeout, ``close()``) ends the task.
"""
from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable, Protocol

from .clients.payments import PaymentProvider, PaymentStatus, digits_only
from .config import ClientConfig
from .exceptions import ApiError, PaymentNotFoundError
from .logger import get_logger, log_event
from .models import User

logger = get_logger(__name__)

NOT_IDENTIFIED_MESSAGE = "Pagamento ainda não identificado. O Pix é instantâneo, mas pode levar alguns segundos."
VERIFY_FAILED_MESSAGE = "Erro ao verificar. Tente novamente."
TAX_ID_REQUIRED_MESSAGE = "Para emitir o Pix é necessário um CPF válido (11 dígitos)."


class ActivationStep(str, Enum):
    INTRO = "INTRO"
    LOADING_CHECKOUT = "LOADING_CHECKOUT"
    WAITING_PAYMENT = "WAITING_PAYMENT"
    CHECKING = "CHECKING"
    SUCCESS = "SUCCESS"


class ActivationStateError(RuntimeError):
    pass


class SubscriptionActivator(Protocol):
    async def activate_subscription(self, user_id: str) -> User: ...


StepListener = Callable[[ActivationStep], None]
CompletionCallback = Callable[[User], None]
ProfileUpdater = Callable[[User], Awaitable[User]]


class SubscriptionActivation:
    def __init__(
        self,
        user: User,
        provider: PaymentProvider,
        activator: SubscriptionActivator,
        *,
        open_url: Callable[[str], None] | None = None,
        on_complete: CompletionCallback | None = None,
        on_change: StepListener | None = None,
        profile_updater: ProfileUpdater | None = None,
        poll_interval_seconds: float = 3.0,
        poll_timeout_seconds: float | None = 1800.0,
        success_delay_seconds: float = 3.0,
        manual_success_delay_seconds: float = 2.5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if poll_interval_seconds <= 0:
            raise ValueError("poll_interval_seconds must be > 0")
        self.user = user
        self.provider = provider
        self.activator = activator
        self.open_url = open_url
        self.on_complete = on_complete
        self.on_change = on_change
        self.profile_updater = profile_updater
        self.poll_interval_seconds = poll_interval_seconds
        self.poll_timeout_seconds = poll_timeout_seconds
        self.success_delay_seconds = success_delay_seconds
        self.manual_success_delay_seconds = manual_success_delay_seconds
        self._clock = clock
        self._step = ActivationStep.INTRO
        self._poll_task: asyncio.Task | None = None
        self._closed = False
        self.error_message = ""

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        user: User,
        provider: PaymentProvider,
        activator: SubscriptionActivator,
        **kwargs,
    ) -> "SubscriptionActivation":
        return cls(
            user,
            provider,
            activator,
            poll_interval_seconds=config.poll_interval_seconds,
            poll_timeout_seconds=config.poll_timeout_seconds,
            success_delay_seconds=config.success_delay_seconds,
            manual_success_delay_seconds=config.manual_success_delay_seconds,
            **kwargs,
        )

    @property
    def step(self) -> ActivationStep:
        return self._step

    @property
    def polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def start_checkout(self, tax_id: str | None = None) -> None:
        self._require_open()
        self._require_step(ActivationStep.INTRO, "start checkout")
        self._set_step(ActivationStep.LOADING_CHECKOUT)
        self.error_message = ""

        if len(digits_only(self.user.tax_id)) < 11:
            if len(digits_only(tax_id)) < 11:
                self._back_to_intro(TAX_ID_REQUIRED_MESSAGE)
                return
            self.user = self.user.model_copy(update={"tax_id": digits_only(tax_id)})
            await self._save_profile()

        try:
            checkout_url = await self.provider.create_checkout(self.user)
        except ApiError as exc:
            log_event(logger, "checkout.failed", level=logging.WARNING, code=exc.code, status_code=exc.status_code)
            self._back_to_intro(f"Erro: {exc.message or 'Tente novamente.'}")
            return

        if self.open_url is not None:
            self.open_url(checkout_url)
        self.enter_waiting()

    def enter_waiting(self) -> asyncio.Task:
        """Start polling; must be called from a running event loop."""
        self._require_open()
        if self._step == ActivationStep.SUCCESS:
            raise ActivationStateError("subscription already activated")
        self._stop_polling()
        self._set_step(ActivationStep.WAITING_PAYMENT)
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())
        return self._poll_task

    def cancel_waiting(self) -> None:
        if self._step != ActivationStep.WAITING_PAYMENT:
            return
        self._stop_polling()
        self._set_step(ActivationStep.INTRO)
        log_event(logger, "payment_wait.cancelled", user_id=self.user.id)

    async def verify_manually(self) -> ActivationStep:
        self._require_open()
        self._require_step(ActivationStep.INTRO, "verify payment")
        self._set_step(ActivationStep.CHECKING)
        self.error_message = ""

        try:
            status = await self.provider.check_payment_status(self.user.email)
        except Exception as exc:
            log_event(logger, "payment_status.manual_failed", level=logging.WARNING, error=type(exc).__name__)
            self._back_to_intro(VERIFY_FAILED_MESSAGE)
            return self._step

        if status != PaymentStatus.ACTIVE:
            self._back_to_intro(NOT_IDENTIFIED_MESSAGE)
            return self._step

        try:
            await self._activate(self.manual_success_delay_seconds)
        except PaymentNotFoundError as exc:
            self._back_to_intro(exc.message)
        except ApiError:
            self._back_to_intro(VERIFY_FAILED_MESSAGE)
        return self._step

    async def wait(self) -> None:
        """Wait until the current poll task ends (success, timeout or cancel)."""
        task = self._poll_task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    async def close(self) -> None:
        self._closed = True
        task = self._poll_task
        self._stop_polling()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise

    async def __aenter__(self) -> "SubscriptionActivation":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def _poll_loop(self) -> None:
        started = self._clock()
        checks = 0
        while True:
            checks += 1
            status = await self._check_status()
            if status == PaymentStatus.ACTIVE:
                try:
                    await self._activate(self.success_delay_seconds)
                    return
                except ApiError as exc:
                    log_event(
                        logger,
                        "subscription.activation_failed",
                        level=logging.WARNING,
                        code=exc.code,
                        status_code=exc.status_code,
                    )
            if self.poll_timeout_seconds is not None and self._clock() - started >= self.poll_timeout_seconds:
                log_event(logger, "payment_wait.timed_out", level=logging.WARNING, checks=checks)
                self._poll_task = None
                self._back_to_intro(NOT_IDENTIFIED_MESSAGE)
                return
            await asyncio.sleep(self.poll_interval_seconds)

    async def _check_status(self) -> PaymentStatus:
        try:
            return PaymentStatus(await self.provider.check_payment_status(self.user.email))
        except Exception as exc:
            # an unreachable provider is just another "not yet"
            log_event(logger, "payment_status.check_failed", level=logging.WARNING, error=type(exc).__name__)
            return PaymentStatus.PENDING

    async def _activate(self, delay: float) -> None:
        activated = await self.activator.activate_subscription(self.user.id)
        self.user = activated
        self._set_step(ActivationStep.SUCCESS)
        log_event(logger, "subscription.activated", user_id=activated.id)
        if delay > 0:
            await asyncio.sleep(delay)
        if self.on_complete is not None:
            self.on_complete(activated)

    async def _save_profile(self) -> None:
        if self.profile_updater is None:
            return
        try:
            self.user = await self.profile_updater(self.user)
        except ApiError as exc:
            log_event(logger, "profile.update_failed", level=logging.WARNING, code=exc.code)

    def _stop_polling(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is not None and not task.done():
            task.cancel()

    def _back_to_intro(self, message: str) -> None:
        self.error_message = message
        self._set_step(ActivationStep.INTRO)

    def _set_step(self, step: ActivationStep) -> None:
        if step == self._step:
            return
        self._step = step
        if self.on_change is not None:
            self.on_change(step)

    def _require_step(self, step: ActivationStep, action: str) -> None:
        if self._step != step:
            raise ActivationStateError(f"cannot {action} while {self._step.value}")

    def _require_open(self) -> None:
        if self._closed:
            raise ActivationStateError("activation flow is closed")
