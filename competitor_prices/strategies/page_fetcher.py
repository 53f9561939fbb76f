# competitor_prices/strategies/page_fetcher.py

"""Resilient product-page transport shared by every strategy."""

import logging
import threading
import time
from typing import Any
from urllib.parse import urlparse

import cloudscraper  # type: ignore[import-untyped]
from curl_cffi import requests as curl_requests

from competitor_prices.config.settings import Settings

# Interstitials served instead of the product page
_CHALLENGE_MARKERS: tuple[str, ...] = (
    "challenges.cloudflare.com",
    "cdn-cgi/challenge-platform",
    "just a moment",
    "cf-turnstile",
    "cf_chl_opt",
)

# Long pages routinely mention "captcha" in footer scripts
_CONTENT_RICH_LENGTH = 5000

# Smallest slice of the deadline worth spending on another request
_MIN_REQUEST_WINDOW = 1.0


def blocking_marker(text: str, keywords: list[str]) -> str | None:
    """Return the challenge marker or CAPTCHA keyword found, if any."""
    if text.lstrip().startswith(("{", "[")):
        return None
    lower = text.lower()
    for marker in _CHALLENGE_MARKERS:
        if marker in lower:
            return marker
    if "<body" in lower and len(text) > _CONTENT_RICH_LENGTH:
        return None
    return next((k for k in keywords if k in lower), None)


def host_of(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


class CircuitBreaker:
    """Consecutive-failure breaker that half-opens after a cooldown.

    Safe to share between worker threads.
    """

    def __init__(
        self, name: str, threshold: int, cooldown: float,
    ) -> None:
        self.name = name
        self.threshold = threshold
        self.cooldown = cooldown
        self.failures: int = 0
        self.opened_at: float | None = None
        self._lock = threading.Lock()
        self._logger = logging.getLogger("competitor_prices.breaker")

    @property
    def is_open(self) -> bool:
        return self.opened_at is not None

    def allows_request(self) -> bool:
        """False while open; lets one trial request through after cooldown."""
        with self._lock:
            if self.opened_at is None:
                return True
            waited = time.time() - self.opened_at
            if waited < self.cooldown:
                return False
            self._logger.info(
                "[%s] Circuit breaker half-open after %.0fs",
                self.name,
                waited,
            )
            self.opened_at = None
            return True

    def record_success(self) -> None:
        with self._lock:
            self.failures = 0
            self.opened_at = None

    def record_failure(self) -> None:
        # A failed half-open trial trips straight back to open
        with self._lock:
            self.failures += 1
            if self.failures >= self.threshold:
                self.opened_at = time.time()
                self._logger.error(
                    "[%s] Circuit breaker opened after %d consecutive "
                    "failures",
                    self.name,
                    self.failures,
                )


class HostThrottle:
    """Politeness delay and breaker for one marketplace host."""

    def __init__(self, host: str, settings: Settings) -> None:
        self.host = host
        self.base_delay = settings.REQUEST_DELAY
        self.max_delay = (
            settings.REQUEST_DELAY * settings.MAX_DELAY_MULTIPLIER
        )
        self.delay: float = self.base_delay
        self.breaker = CircuitBreaker(
            host,
            settings.CIRCUIT_BREAKER_THRESHOLD,
            settings.CIRCUIT_BREAKER_COOLDOWN,
        )
        self._lock = threading.Lock()

    def escalate(self) -> float:
        """Double the delay up to its cap and return the new value."""
        with self._lock:
            self.delay = min(self.delay * 2, self.max_delay)
            return self.delay

    def reset(self) -> None:
        with self._lock:
            self.delay = self.base_delay


class PageFetcher:
    """GETs product pages through an impersonating ``curl_cffi`` session.

    Each worker thread gets its own session. Delay and circuit breaker
    state is tracked per host, so a marketplace that starts rate
    limiting only slows down requests to that marketplace. A request
    is preceded by the host's politeness delay, which doubles on
    429/403/challenge responses (capped) and resets on success. When
    every attempt fails, ``cloudscraper`` gets one try before giving up.
    An optional ``deadline`` (``time.monotonic()`` value) bounds the
    whole chain: request timeouts shrink to fit it and steps that
    cannot start in time are skipped. All failures come back as
    ``None``.
    """

    def __init__(
        self, source_name: str, settings: Settings | None = None,
    ) -> None:
        self.source_name = source_name
        self.settings = settings or Settings()
        self.logger = logging.getLogger(
            f"competitor_prices.{source_name}"
        )
        self.timeout: int = self.settings.REQUEST_TIMEOUT
        self._local = threading.local()
        self._hosts: dict[str, HostThrottle] = {}
        self._hosts_lock = threading.Lock()

    @property
    def session(self) -> curl_requests.Session:
        """This thread's impersonating session, created on first use."""
        session: curl_requests.Session | None = getattr(
            self._local, "session", None,
        )
        if session is None:
            session = curl_requests.Session(
                impersonate=self.settings.IMPERSONATE_BROWSER
            )
            self._local.session = session
        return session

    def throttle_for(self, url: str) -> HostThrottle:
        host = host_of(url)
        with self._hosts_lock:
            throttle = self._hosts.get(host)
            if throttle is None:
                throttle = HostThrottle(host, self.settings)
                self._hosts[host] = throttle
            return throttle

    @staticmethod
    def _remaining(deadline: float | None) -> float | None:
        if deadline is None:
            return None
        return deadline - time.monotonic()

    def _window(self, deadline: float | None) -> float | None:
        """Request timeout that fits the deadline, or None if none does."""
        remaining = self._remaining(deadline)
        if remaining is None:
            return self.timeout
        if remaining < _MIN_REQUEST_WINDOW:
            return None
        return min(self.timeout, remaining)

    def _pause(self, seconds: float, deadline: float | None) -> bool:
        """Sleep unless that would overrun the deadline."""
        remaining = self._remaining(deadline)
        if remaining is not None and seconds >= remaining:
            return False
        time.sleep(seconds)
        return True

    def _out_of_time(self, url: str) -> None:
        self.logger.info(
            "[%s] Extraction deadline reached for %s",
            self.source_name,
            url,
        )

    def get(
        self,
        url: str,
        headers: dict[str, str],
        deadline: float | None = None,
    ) -> curl_requests.Response | None:
        """Return a clean 200 response, or None once retries run out."""
        throttle = self.throttle_for(url)
        if not throttle.breaker.allows_request():
            return None
        attempts = self.settings.MAX_RETRIES
        for attempt in range(1, attempts + 1):
            window = self._window(deadline)
            if window is None:
                self._out_of_time(url)
                break
            try:
                resp = self.session.get(
                    url, headers=headers, timeout=window,
                )
            except Exception as exc:
                self.logger.warning(
                    "[%s] Request error on attempt %d/%d: %s",
                    self.source_name,
                    attempt,
                    attempts,
                    exc,
                    exc_info=True,
                )
                if not self._pause(throttle.delay * attempt, deadline):
                    break
                continue

            if resp.status_code != 200:
                self.logger.warning(
                    "[%s] HTTP %d on attempt %d/%d",
                    self.source_name,
                    resp.status_code,
                    attempt,
                    attempts,
                )
                if resp.status_code in (403, 429):
                    if not self._back_off(throttle, deadline):
                        break
                continue

            marker = blocking_marker(
                resp.text, self.settings.CAPTCHA_KEYWORDS,
            )
            if marker:
                self.logger.warning(
                    "[%s] Blocked page detected (marker: %r)",
                    self.source_name,
                    marker,
                )
                if not self._back_off(throttle, deadline):
                    break
                continue

            throttle.breaker.record_success()
            throttle.reset()
            return resp

        throttle.breaker.record_failure()
        return None

    def _back_off(
        self, throttle: HostThrottle, deadline: float | None,
    ) -> bool:
        """Escalate the host's delay and wait it out if time allows."""
        delay = throttle.escalate()
        self.logger.warning(
            "[%s] Rate-limited by %s, delay escalated to %.1fs",
            self.source_name,
            throttle.host,
            delay,
        )
        return self._pause(delay, deadline)

    def _cloudscraper_get(
        self, url: str, headers: dict[str, str], timeout: float,
    ) -> str | None:
        """One attempt through cloudscraper's JS challenge solver."""
        try:
            _cs: Any = cloudscraper
            scraper: Any = _cs.create_scraper()
            resp: Any = scraper.get(url, headers=headers, timeout=timeout)
        except Exception as exc:
            self.logger.error(
                "[%s] cloudscraper fallback also failed: %s",
                self.source_name,
                exc,
                exc_info=True,
            )
            return None
        if resp.status_code != 200:
            self.logger.warning(
                "[%s] cloudscraper HTTP %d",
                self.source_name,
                resp.status_code,
            )
            return None
        return str(resp.text)

    def fetch(
        self,
        url: str,
        headers: dict[str, str],
        deadline: float | None = None,
    ) -> str | None:
        """Page markup for ``url``, or None if every transport failed."""
        throttle = self.throttle_for(url)
        if not throttle.breaker.allows_request():
            self.logger.info(
                "[%s] Circuit open for %s, skipping %s",
                self.source_name,
                throttle.host,
                url,
            )
            return None
        if not self._pause(throttle.delay, deadline):
            self._out_of_time(url)
            return None

        resp = self.get(url, headers, deadline)
        if resp is not None:
            return str(resp.text)

        window = self._window(deadline)
        if window is None:
            self._out_of_time(url)
            return None
        self.logger.info(
            "[%s] curl_cffi exhausted, falling back to cloudscraper",
            self.source_name,
        )
        return self._cloudscraper_get(url, headers, window)
