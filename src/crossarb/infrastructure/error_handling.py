"""Error taxonomy, retry helper and error bookkeeping."""
import asyncio
import socket
from typing import Awaitable, Callable, Optional, TypeVar
from loguru import logger

import aiohttp
import ccxt

T = TypeVar("T")


class CrossArbError(Exception):
    """Base class for crossarb errors."""


class ConfigurationError(CrossArbError):
    """Raised when the configuration cannot be used."""


class BusNotAttachedError(CrossArbError):
    """Raised when an agent publishes before being given an event bus."""


class PriceValidationError(CrossArbError):
    """Raised when a price fails sanity checks."""


class ProfitabilityError(CrossArbError):
    """Raised when a trade is not worth its fees."""


class InsufficientBalanceError(CrossArbError):
    """Raised when the buy venue cannot fund a trade."""


class TradeLegError(CrossArbError):
    """Raised when a buy or sell leg does not complete."""


class TradeInProgressError(CrossArbError):
    """Raised when a manual trade is requested while one is executing."""


class TradingPausedError(CrossArbError):
    """Raised when a manual trade is requested while trading is paused."""


class NoOpportunityError(CrossArbError):
    """Raised when a manual trade is requested before any opportunity was detected."""


class AgentRegistrationError(CrossArbError):
    """Raised for duplicate or unknown agent names."""


class AgentStartupError(CrossArbError):
    """Raised when one or more agents fail to start."""

    def __init__(self, failures: dict):
        self.failures = failures
        names = ", ".join(sorted(failures))
        super().__init__(f"Agents failed to start: {names}")


_NETWORK_MARKERS = ("getaddrinfo", "enotfound", "etimedout", "econnrefused", "timeout", "429")


def is_network_error(error: BaseException) -> bool:
    """True for transient transport failures: DNS, timeouts, refused connections, rate limits."""
    if isinstance(error, (asyncio.TimeoutError, socket.gaierror, ConnectionError)):
        return True
    if isinstance(error, ccxt.NetworkError):
        # includes RequestTimeout, DDoSProtection and RateLimitExceeded
        return True
    if isinstance(error, aiohttp.ClientResponseError):
        return error.status == 429
    if isinstance(error, (aiohttp.ClientConnectionError, aiohttp.ServerTimeoutError)):
        return True

    message = str(error).lower()
    return any(marker in message for marker in _NETWORK_MARKERS)


class RetryableOperation:
    """Run a single async venue call with bounded retries and linear backoff."""

    def __init__(
        self,
        attempts: int = 3,
        base_delay: float = 1.0,
        on_exhausted: Optional[Callable[[BaseException, str], None]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Initialise retry policy.

        Args:
            attempts: Total number of attempts, including the first
            base_delay: Delay unit in seconds; attempt n waits base_delay * n
            on_exhausted: Called with the last error once every attempt failed
            sleep: Coroutine used to wait between attempts
        """
        if attempts < 1:
            raise ValueError("attempts must be at least 1")

        self.attempts = attempts
        self.base_delay = base_delay
        self.on_exhausted = on_exhausted
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry that follows a failed attempt."""
        return self.base_delay * attempt

    async def run(self, operation: Callable[[], Awaitable[T]], context: str = "") -> T:
        """Execute operation, retrying on any exception."""
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.attempts + 1):
            try:
                return await operation()
            except Exception as e:
                last_error = e

                if attempt < self.attempts:
                    delay = self.delay_for(attempt)
                    logger.info(
                        f"Retry attempt {attempt}/{self.attempts} for {context or 'operation'} "
                        f"in {delay:.2f}s: {e}"
                    )
                    await self._sleep(delay)

        logger.debug(f"{context or 'operation'} failed after {self.attempts} attempts: {last_error}")

        if self.on_exhausted:
            try:
                self.on_exhausted(last_error, context)
            except Exception as callback_error:
                logger.error(f"Retry exhaustion callback failed: {callback_error}")

        raise last_error


class ErrorTracker:
    """Counts reported errors per agent and per kind."""

    def __init__(self):
        self.error_counts: dict[str, int] = {}
        self.agent_errors: dict[str, int] = {}
        self.critical_count = 0
        self.last_error: Optional[str] = None

    def record_error(self, agent: str, error_type: str, message: str = "", critical: bool = False):
        """Record an error occurrence."""
        self.error_counts[error_type] = self.error_counts.get(error_type, 0) + 1
        self.agent_errors[agent] = self.agent_errors.get(agent, 0) + 1
        if critical:
            self.critical_count += 1
        self.last_error = f"{agent}: {message}" if message else agent

    def get_error_stats(self) -> dict:
        """Get error statistics."""
        return {
            'total_errors': sum(self.error_counts.values()),
            'critical_errors': self.critical_count,
            'error_types': self.error_counts.copy(),
            'by_agent': self.agent_errors.copy(),
            'last_error': self.last_error,
        }

    def reset(self):
        """Forget all recorded errors."""
        self.error_counts.clear()
        self.agent_errors.clear()
        self.critical_count = 0
        self.last_error = None
