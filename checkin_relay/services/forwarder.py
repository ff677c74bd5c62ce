"""Relays inbound check-in webhooks to the downstream check-in endpoint."""

import asyncio
from typing import Awaitable, Callable, List, Mapping, Optional
from pydantic import BaseModel, Field
import logging

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from checkin_relay.core.config import Settings
from checkin_relay.models import AttemptOutcome, DeliveryAttempt

logger = logging.getLogger(__name__)


class ForwardingConfigurationError(Exception):
    """Downstream URL or credential missing or unusable."""
    pass


class RetryableDeliveryError(Exception):
    """Downstream answered with a status worth retrying."""

    def __init__(self, response: httpx.Response):
        super().__init__(f"Downstream returned {response.status_code}")
        self.response = response


class DeliveryError(Exception):
    """Retry budget exhausted on network faults without any downstream response."""

    def __init__(self, message: str, attempts: List[DeliveryAttempt]):
        super().__init__(message)
        self.attempts = attempts


# Transient network faults; UnsupportedProtocol and other transport errors are final
RETRYABLE_TRANSPORT_ERRORS = (httpx.TimeoutException, httpx.NetworkError)


def is_retryable_status(status_code: int) -> bool:
    """5xx and 429 are transient; everything else is final."""
    return status_code >= 500 or status_code == 429


class RetryPolicy:
    """Bounded exponential backoff without jitter."""

    def __init__(self, max_attempts: int = 3, base_delay: float = 1.0, multiplier: float = 2.0):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.multiplier = multiplier

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.forward_max_attempts,
            base_delay=settings.forward_base_delay,
            multiplier=settings.forward_backoff_multiplier,
        )

    def delay_before(self, attempt_number: int) -> float:
        """Wait before the given 1-based attempt."""
        if attempt_number <= 1:
            return 0
        return self.base_delay * self.multiplier ** (attempt_number - 2)

    def retrying(self, sleep: Callable[[float], Awaitable[None]]) -> AsyncRetrying:
        # tenacity waits multiplier * exp_base ** (finished_attempt - 1),
        # which equals delay_before(finished_attempt + 1)
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=self.multiplier),
            retry=retry_if_exception_type((RetryableDeliveryError, *RETRYABLE_TRANSPORT_ERRORS)),
            sleep=sleep,
            reraise=True,
        )


class ForwardResult(BaseModel):
    """Final downstream outcome handed back to the caller."""
    status_code: int
    body: str
    attempts: List[DeliveryAttempt] = Field(default_factory=list)


class DeliveryForwarder:
    """Forwards webhook bodies downstream with retries."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings
        self.policy = RetryPolicy.from_settings(settings)
        self._transport = transport
        self._sleep = sleep

    def build_headers(self, inbound_headers: Mapping[str, str]) -> dict:
        """Headers for the downstream request."""
        headers = {
            "Authorization": f"Bearer {self.settings.downstream_api_key}",
            "Content-Type": "application/json",
        }
        signature_header = self.settings.forward_signature_header.lower()
        for name, value in inbound_headers.items():
            if name.lower() == signature_header and value:
                headers[signature_header] = value
                break
        return headers

    async def forward(
        self,
        owner_id: str,
        webhook_token: str,
        body: bytes,
        inbound_headers: Mapping[str, str],
    ) -> ForwardResult:
        """Relay ``body`` downstream, retrying transient failures.

        Returns the first non-retryable response, or the last retryable one
        once the attempt budget is spent. Raises DeliveryError when every
        attempt failed at the transport level.
        """
        if not self.settings.forwarding_configured:
            raise ForwardingConfigurationError("Downstream configuration missing")

        url = self.settings.downstream_url(owner_id, webhook_token)
        headers = self.build_headers(inbound_headers)
        attempts: List[DeliveryAttempt] = []

        logger.info(f"Forwarding webhook for owner {owner_id}", extra={"owner_id": owner_id})

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.forward_timeout,
                transport=self._transport,
            ) as client:
                async for attempt in self.policy.retrying(self._sleep):
                    with attempt:
                        response = await self._attempt(
                            client, url, body, headers, attempt.retry_state.attempt_number, attempts
                        )
        except RetryableDeliveryError as e:
            logger.error(
                f"Giving up after {len(attempts)} attempts; last status {e.response.status_code}",
                extra={"owner_id": owner_id, "attempts": len(attempts)},
            )
            return ForwardResult(status_code=e.response.status_code, body=e.response.text, attempts=attempts)
        except httpx.UnsupportedProtocol as e:
            logger.error(f"Downstream URL rejected: {e}", extra={"owner_id": owner_id})
            raise ForwardingConfigurationError(f"Downstream configuration invalid: {e}") from e
        except RETRYABLE_TRANSPORT_ERRORS as e:
            logger.error(
                f"Giving up after {len(attempts)} attempts; downstream unreachable: {e}",
                extra={"owner_id": owner_id, "attempts": len(attempts)},
            )
            raise DeliveryError(str(e) or e.__class__.__name__, attempts) from e

        return ForwardResult(status_code=response.status_code, body=response.text, attempts=attempts)

    async def _attempt(
        self,
        client: httpx.AsyncClient,
        url: str,
        body: bytes,
        headers: dict,
        attempt_number: int,
        attempts: List[DeliveryAttempt],
    ) -> httpx.Response:
        delay = self.policy.delay_before(attempt_number)
        log_extra = {"attempt": attempt_number, "delay": delay, "max_attempts": self.policy.max_attempts}

        try:
            response = await client.post(url, content=body, headers=headers)
        except httpx.TransportError as e:
            retryable = isinstance(e, RETRYABLE_TRANSPORT_ERRORS)
            attempts.append(DeliveryAttempt(
                attempt_number=attempt_number,
                delay=delay,
                outcome=AttemptOutcome.RETRYABLE if retryable else AttemptOutcome.TERMINAL,
                error=str(e) or e.__class__.__name__,
            ))
            logger.warning(f"Attempt {attempt_number} failed: {e!r}", extra=log_extra)
            raise

        status_code = response.status_code
        if is_retryable_status(status_code):
            outcome = AttemptOutcome.RETRYABLE
        elif response.is_success:
            outcome = AttemptOutcome.SUCCESS
        else:
            outcome = AttemptOutcome.TERMINAL

        attempts.append(DeliveryAttempt(
            attempt_number=attempt_number,
            delay=delay,
            outcome=outcome,
            status_code=status_code,
        ))
        logger.info(
            f"Attempt {attempt_number} returned {status_code} ({outcome.value})",
            extra={**log_extra, "status_code": status_code},
        )

        if outcome == AttemptOutcome.RETRYABLE:
            raise RetryableDeliveryError(response)
        return response
