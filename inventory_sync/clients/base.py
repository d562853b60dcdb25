from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Iterator, Sequence

import httpx
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_incrementing,
)

from inventory_sync.errors import InventorySyncError, MarketplaceAPIError, TransientAPIError
from inventory_sync.normalizer import EnvelopeStrategy, require_records
from inventory_sync.schemas.sync import HealthCheckResult
from inventory_sync.settings import settings

logger = logging.getLogger(__name__)


def parse_retry_after(value: str | None, default: float) -> float:
    """
    Retry-After 헤더 값을 초 단위로 변환합니다.
    정수/실수 초 또는 HTTP-date를 지원하고, 해석할 수 없으면 default를 사용합니다.
    """
    if not value:
        return default
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default
    if when is None:
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class MarketplaceClient:
    """
    마켓 REST API 공통 클라이언트.

    - 429: Retry-After 만큼 대기 후 재전송 (attempt 소모 없음, rate_limit_max_waits 상한)
    - 그 외 non-2xx / 네트워크 오류 / JSON 파싱 실패: 실패한 attempt로 간주, 선형 백오프 재시도
    - 재시도 예산 소진 시 TransientAPIError
    """

    marketplace_name = "Marketplace"

    def __init__(
        self,
        base_url: str,
        timeout: httpx.Timeout | None = None,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        page_size: int | None = None,
        max_pages: int | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout or httpx.Timeout(settings.http_timeout, connect=settings.http_connect_timeout)
        self._transport = transport
        self._sleep = sleep
        self._max_attempts = max_attempts or settings.request_max_attempts
        self._base_delay = settings.retry_base_delay if base_delay is None else base_delay
        self.page_size = page_size or settings.sync_page_size
        self.max_pages = max_pages or settings.sync_max_pages

    @property
    def base_url(self) -> str:
        return self._base_url

    def _auth_headers(self) -> dict[str, str]:
        raise NotImplementedError

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self._base_url}{endpoint}"

    def _send_once(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None,
        payload: Any,
    ) -> tuple[httpx.Response, Any]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        headers.update(self._auth_headers())

        rate_limit_waits = 0
        with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
            while True:
                try:
                    resp = client.request(method, url, params=params, json=payload, headers=headers)
                except (httpx.HTTPError, httpx.InvalidURL) as e:
                    raise MarketplaceAPIError(
                        f"{self.marketplace_name} API request failed: {e}",
                        url=url,
                    ) from e

                if resp.status_code == 429 and rate_limit_waits < settings.rate_limit_max_waits:
                    wait = parse_retry_after(resp.headers.get("Retry-After"), settings.rate_limit_default_wait)
                    rate_limit_waits += 1
                    logger.warning(
                        f"[HTTP] {self.marketplace_name} rate limited on {method} {url}, "
                        f"waiting {wait:.1f}s ({rate_limit_waits}/{settings.rate_limit_max_waits})"
                    )
                    self._sleep(wait)
                    continue
                break

        if not resp.is_success:
            raise MarketplaceAPIError(
                f"{self.marketplace_name} API error: {resp.status_code} {resp.reason_phrase} - {resp.text[:200]}",
                status_code=resp.status_code,
                url=url,
                response_body=resp.text,
            )

        if not resp.content:
            return resp, {}
        try:
            return resp, resp.json()
        except ValueError as e:
            raise MarketplaceAPIError(
                f"{self.marketplace_name} API returned invalid JSON",
                status_code=resp.status_code,
                url=url,
                response_body=resp.text,
            ) from e

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"[HTTP] {self.marketplace_name} attempt {retry_state.attempt_number}/{self._max_attempts} failed: {error}"
        )

    def _retrying(self) -> Retrying:
        return Retrying(
            stop=stop_after_attempt(self._max_attempts) | stop_after_delay(settings.request_deadline),
            wait=wait_incrementing(start=self._base_delay, increment=self._base_delay),
            retry=retry_if_exception_type(MarketplaceAPIError),
            sleep=self._sleep,
            before_sleep=self._log_retry,
        )

    def request_response(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> tuple[httpx.Response, Any]:
        """응답 객체와 파싱된 본문을 함께 반환 (Link 헤더 등이 필요할 때)"""
        url = self._url(endpoint)
        logger.debug(f"[HTTP] {method} {url} params={params}")
        try:
            for attempt in self._retrying():
                with attempt:
                    return self._send_once(method, url, params, json)
        except RetryError as e:
            last_attempt = e.last_attempt
            last_error = last_attempt.exception()
            logger.error(
                f"[HTTP] {self.marketplace_name} {method} {endpoint} failed after "
                f"{last_attempt.attempt_number} attempts: {last_error}"
            )
            raise TransientAPIError(
                f"{self.marketplace_name} request {method} {endpoint} failed after "
                f"{last_attempt.attempt_number} attempts: {last_error}",
                last_error=last_error,
                attempts=last_attempt.attempt_number,
            ) from last_error
        raise AssertionError("unreachable")

    def request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        _, data = self.request_response(method, endpoint, params=params, json=json)
        return data

    def probe(self, candidates: Sequence[str], params: dict[str, Any] | None = None) -> tuple[str, Any]:
        """
        후보 endpoint를 순서대로 시도해 처음 응답한 endpoint와 본문을 반환합니다.
        모두 실패하면 마지막 TransientAPIError를 다시 던집니다.
        """
        last_error: TransientAPIError | None = None
        for endpoint in candidates:
            try:
                return endpoint, self.request("GET", endpoint, params=params)
            except TransientAPIError as e:
                logger.warning(f"[HTTP] {self.marketplace_name} endpoint {endpoint} unavailable: {e.message}")
                last_error = e
        if last_error is None:
            raise ValueError("probe() requires at least one candidate endpoint")
        raise last_error

    def iter_page_numbers(
        self,
        endpoint: str,
        params: dict[str, Any],
        strategies: Sequence[EnvelopeStrategy],
        entity: str,
        first_payload: Any = None,
    ) -> Iterator[dict]:
        """
        page/pageSize 방식 페이지네이션. 페이지가 page_size보다 작거나 비면 종료합니다.
        first_payload가 주어지면 1페이지 요청을 생략합니다 (endpoint 탐색에서 이미 받은 경우).
        """
        for page in range(1, self.max_pages + 1):
            if page == 1 and first_payload is not None:
                payload = first_payload
            else:
                payload = self.request("GET", endpoint, params={**params, "page": page, "pageSize": self.page_size})
            records = require_records(payload, strategies, entity=entity)
            yield from records
            if len(records) < self.page_size:
                return
        logger.warning(f"[HTTP] {self.marketplace_name} {endpoint} stopped at max_pages={self.max_pages}")

    def iter_link_pages(
        self,
        endpoint: str,
        params: dict[str, Any],
        strategies: Sequence[EnvelopeStrategy],
        entity: str,
    ) -> Iterator[dict]:
        """Link 헤더의 rel="next" 커서를 따라가는 페이지네이션"""
        next_endpoint: str | None = endpoint
        next_params: dict[str, Any] | None = params
        pages = 0
        while next_endpoint and pages < self.max_pages:
            resp, payload = self.request_response("GET", next_endpoint, params=next_params)
            pages += 1
            yield from require_records(payload, strategies, entity=entity)
            next_endpoint = parse_next_link(resp.headers.get("Link"))
            # 다음 페이지 URL에 커서와 필요한 쿼리가 모두 들어 있다
            next_params = None
        if next_endpoint:
            logger.warning(f"[HTTP] {self.marketplace_name} {endpoint} stopped at max_pages={self.max_pages}")

    def _health_probe(self) -> str:
        """성공 시 메시지를 반환하고, 실패 시 예외를 던집니다."""
        raise NotImplementedError

    def health_check(self) -> HealthCheckResult:
        started = time.monotonic()
        try:
            message = self._health_probe()
        except InventorySyncError as e:
            logger.warning(f"[HTTP] {self.marketplace_name} health check failed: {e.message}")
            return HealthCheckResult(
                success=False,
                message=f"{self.marketplace_name} API health check failed: {e.message}",
                latency_ms=int((time.monotonic() - started) * 1000),
            )
        return HealthCheckResult(
            success=True,
            message=message,
            latency_ms=int((time.monotonic() - started) * 1000),
        )


def parse_next_link(link_header: str | None) -> str | None:
    """Link: <https://...page_info=abc>; rel="next", <...>; rel="previous" 에서 next URL 추출"""
    if not link_header:
        return None
    for part in link_header.split(","):
        section = part.strip()
        if 'rel="next"' not in section and "rel=next" not in section:
            continue
        start = section.find("<")
        end = section.find(">", start + 1)
        if start != -1 and end != -1:
            return section[start + 1:end]
    return None
