"""
Complaint Engine External Integrations
======================================

External services for the complaint engine:
- YAML engine config with watchdog hot reload
- Webhook notification dispatcher (httpx, retry, circuit breaker)
- APScheduler wrapper driving the periodic SLA sweep
"""

import asyncio
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from resolvehub.complaints.application import INotificationDispatcher, IEngineConfigProvider
from resolvehub.config import settings
from resolvehub.config.engine import EngineConfig
from resolvehub.core import ConfigurationException, NotificationFailureException
from resolvehub.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for engine config file changes."""

    def __init__(self, config_manager: "EngineConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("Engine config file changed", extra={"path": event.src_path})
            self.config_manager.reload()


class EngineConfigManager(IEngineConfigProvider):
    """
    Thread-safe engine configuration manager with hot-reload support.

    Holds the routing table, SLA durations, escalation thresholds and
    scoring tables. A reload that fails validation keeps the previous
    configuration in place.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self._config: Optional[EngineConfig] = config
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> EngineConfig:
        """
        Initial configuration load.

        Raises:
            ConfigurationException: if the file exists but is invalid
        """
        self._path = Path(path)
        try:
            config = self._load_from_file(self._path)
        except (yaml.YAMLError, ValidationError) as e:
            raise ConfigurationException(
                f"Invalid engine config: {self._path}", {"error": str(e)}
            )
        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> EngineConfig:
        if not path.exists():
            logger.warning("Engine config file not found, using defaults", extra={"path": str(path)})
            return EngineConfig()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return EngineConfig(**data)

    def reload(self) -> bool:
        """Reload configuration from file."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except (OSError, yaml.YAMLError, ValidationError) as e:
            logger.error(
                "Failed to reload engine config, keeping previous",
                extra={"path": str(self._path), "error": str(e), "error_type": "ConfigurationError"}
            )
            return False

        with self._lock:
            self._config = new_config
        logger.info("Engine configuration reloaded")
        return True

    def start_watching(self) -> None:
        """
        Start watching the configuration file.

        Skipped when the file does not exist or the platform has no
        usable file notification backend.
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "Engine config file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info("Started watching engine config", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static config", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    def get_config(self) -> EngineConfig:
        with self._lock:
            if self._config is None:
                raise RuntimeError("Engine configuration not loaded")
            return self._config

    @property
    def config(self) -> EngineConfig:
        return self.get_config()


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for the notification webhook.

    States:
    - CLOSED: requests pass through
    - OPEN: after N failures, reject requests for ``recovery_timeout`` seconds
    - HALF_OPEN: after the timeout, let one trial request through
    """

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60.0):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class WebhookNotificationDispatcher(INotificationDispatcher):
    """
    Posts notification events to a webhook.

    Body: ``{"recipient", "event_type", "payload", "sent_at"}``. Retries
    with exponential backoff; a 2xx response counts as delivered.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        self._webhook_url = webhook_url if webhook_url is not None else settings.notification_webhook_url
        self._timeout = timeout_seconds or settings.notification_timeout_seconds
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._circuit_breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._http_client = client

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    def _build_message(self, recipient: str, event_type: str, payload: dict) -> Dict[str, Any]:
        return {
            "recipient": recipient,
            "event_type": event_type,
            "payload": payload,
            "sent_at": datetime.now(timezone.utc).isoformat(),
        }

    async def send(self, recipient: str, event_type: str, payload: dict) -> bool:
        """
        Send an event to the webhook.

        Returns:
            True if delivered; False when no webhook is configured or the
            circuit is open

        Raises:
            NotificationFailureException: when every attempt failed
        """
        if not self._webhook_url:
            logger.debug("Notification webhook URL not configured, skipping notification")
            return False

        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping notification",
                extra={"recipient": recipient, "event_type": event_type}
            )
            return False

        message = self._build_message(recipient, event_type, payload)
        last_error: Optional[str] = None

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=message)

                if response.is_success:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Notification sent",
                        extra={"recipient": recipient, "event_type": event_type}
                    )
                    return True

                last_error = f"HTTP {response.status_code}"
                logger.warning(
                    "Notification webhook returned non-2xx",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
            except httpx.HTTPError as e:
                last_error = str(e)
                logger.error(
                    "Notification request failed",
                    extra={"error": str(e), "attempt": attempt + 1, "recipient": recipient}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._backoff_base * 2 ** attempt)

        self._circuit_breaker.record_failure()
        raise NotificationFailureException(
            f"Delivery of {event_type} to {recipient} failed after {self._max_retries} attempts",
            {"recipient": recipient, "event_type": event_type, "error": last_error}
        )

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


SweepJob = Callable[[datetime], Awaitable[Any]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SLAScheduler:
    """
    Wrapper for APScheduler driving the periodic SLA sweep.

    The interval and the clock are injectable. APScheduler's
    ``max_instances=1`` keeps scheduled runs from piling up; the sweep
    itself also skips overlapping ticks.
    """

    JOB_ID = "sla_sweep"

    def __init__(
        self,
        job: SweepJob,
        interval_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self._job = job
        self.interval_seconds = (
            interval_seconds if interval_seconds is not None else settings.sweep_interval_seconds
        )
        self._clock = clock
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    async def _run(self) -> Any:
        return await self._job(self._clock())

    async def start(self) -> None:
        """Start the scheduler. An interval of 0 leaves it disabled."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        if self.interval_seconds <= 0:
            logger.info("SLA scheduler disabled", extra={"interval_seconds": self.interval_seconds})
            return

        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._scheduler.add_job(
            self._run,
            "interval",
            seconds=self.interval_seconds,
            id=self.JOB_ID,
            name="SLA Sweep Job",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info("SLA scheduler started", extra={"interval_seconds": self.interval_seconds})

    async def trigger_now(self) -> Any:
        """Run one sweep immediately, outside the schedule."""
        logger.info("Manual SLA sweep triggered")
        return await self._run()

    @property
    def next_run_at(self) -> Optional[datetime]:
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(self.JOB_ID)
        return job.next_run_time if job else None

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running
