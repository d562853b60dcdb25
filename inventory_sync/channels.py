"""
Channel Orchestrator.

채널 = 마켓 1개에 대한 (클라이언트 + 카테고리 핸들러 + 불변 설정) 조합.
명시적 상태 머신으로 초기화 여부를 관리하고, 전체/카테고리 동기화를 조율해
결과를 하나의 SyncResult로 모읍니다.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable
import logging

from sqlalchemy.orm import Session

from inventory_sync.clients.myntra import MyntraClient
from inventory_sync.clients.shopify import ShopifyClient
from inventory_sync.errors import ChannelStateError, InventorySyncError, SyncInProgressError
from inventory_sync.models import Marketplace
from inventory_sync.persistence import mark_synced, set_marketplace_status
from inventory_sync.schemas.marketplace import (
    ChannelConfig,
    MyntraSettings,
    ShopifySettings,
    parse_marketplace_settings,
)
from inventory_sync.schemas.sync import HealthCheckResult, SyncResult
from inventory_sync.sync.base import CatalogSyncHandler
from inventory_sync.sync.locks import sync_lock
from inventory_sync.sync.myntra import MyntraSyncHandler
from inventory_sync.sync.shopify import ShopifySyncHandler

logger = logging.getLogger(__name__)

CATEGORIES = ("products", "orders", "inventory")


class ChannelState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    ERROR = "error"
    CLOSED = "closed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite는 tz 정보 없이 돌려준다
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Channel:
    def __init__(
        self,
        session: Session,
        marketplace: Marketplace,
        handler: CatalogSyncHandler,
        config: ChannelConfig,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.session = session
        self.marketplace = marketplace
        self.handler = handler
        self._config = config
        self._clock = clock
        self.state = ChannelState.UNINITIALIZED
        self.last_health: HealthCheckResult | None = None

    @property
    def name(self) -> str:
        return self.handler.source_name

    @property
    def client(self):
        return self.handler.client

    @property
    def config(self) -> ChannelConfig:
        return self._config

    @property
    def is_ready(self) -> bool:
        return self.state is ChannelState.READY

    def update_config(self, **changes: Any) -> ChannelConfig:
        """새 설정 값을 만들어 교체합니다. 기존 값은 변경되지 않습니다."""
        self._config = self._config.with_changes(**changes)
        self.handler.config = self._config
        return self._config

    # ---- 상태 머신 -----------------------------------------------------

    def _transition(self, state: ChannelState) -> None:
        if self.state is not state:
            logger.info(f"[CHANNEL:{self.name.upper()}] {self.marketplace.id} {self.state.value} -> {state.value}")
        self.state = state

    def _apply_health(self, result: HealthCheckResult) -> HealthCheckResult:
        self.last_health = result
        if result.success:
            self._transition(ChannelState.READY)
            set_marketplace_status(self.session, self.marketplace, "active")
        else:
            self._transition(ChannelState.ERROR)
            set_marketplace_status(self.session, self.marketplace, "error")
        return result

    def initialize(self) -> HealthCheckResult:
        """
        헬스 체크로 채널을 초기화합니다.
        READY면 바로 반환하고, 초기화 중이거나 닫힌 채널이면 ChannelStateError.
        """
        if self.state is ChannelState.READY and self.last_health is not None:
            return self.last_health
        if self.state is ChannelState.INITIALIZING:
            raise ChannelStateError(f"{self.name} channel initialization already in progress", state=self.state.value)
        if self.state is ChannelState.CLOSED:
            raise ChannelStateError(f"{self.name} channel is closed", state=self.state.value)

        self._transition(ChannelState.INITIALIZING)
        try:
            result = self.client.health_check()
        except Exception:
            self._transition(ChannelState.ERROR)
            raise
        return self._apply_health(result)

    def _ensure_ready(self) -> HealthCheckResult | None:
        """READY가 아니면 명시적으로 (재)초기화. 실패 시 그 결과를 반환합니다."""
        if self.state is ChannelState.CLOSED:
            raise ChannelStateError(f"{self.name} channel is closed", state=self.state.value)
        if self.state is ChannelState.READY:
            return None
        logger.info(f"[CHANNEL:{self.name.upper()}] initializing before use (state={self.state.value})")
        result = self.initialize()
        return None if result.success else result

    def close(self) -> None:
        self._transition(ChannelState.CLOSED)

    # ---- 동기화 --------------------------------------------------------

    def enabled_categories(self) -> list[str]:
        toggles = {
            "products": self._config.sync_products,
            "orders": self._config.sync_orders,
            "inventory": self._config.sync_inventory,
        }
        return [c for c in CATEGORIES if toggles[c]]

    def _run_category(self, category: str, since: datetime | None) -> SyncResult:
        runner = {
            "products": self.handler.sync_products,
            "orders": self.handler.sync_orders,
            "inventory": self.handler.sync_inventory,
        }[category]
        try:
            return runner(since)
        except Exception as e:
            logger.exception(f"[CHANNEL:{self.name.upper()}] {category} sync failed unexpectedly")
            self.session.rollback()
            return SyncResult(
                success=False,
                message=f"Failed to sync {category} from {self.name}: {e}",
                errors=[str(e)],
                category=category,
            )

    def _run(self, categories: list[str], combine: bool) -> SyncResult:
        try:
            with sync_lock(self.session, self.marketplace.id):
                not_ready = self._ensure_ready()
                if not_ready is not None:
                    return SyncResult.failure(not_ready.message, errors=[not_ready.message])

                started_at = self._clock()
                since = as_utc(self.marketplace.last_sync)
                logger.info(
                    f"[CHANNEL:{self.name.upper()}] sync {categories} since={since.isoformat() if since else None}"
                )
                results = [self._run_category(c, since) for c in categories]

                if combine:
                    result = SyncResult.combine(results, self.name)
                else:
                    result = results[0]

                if result.holds_watermark:
                    logger.warning(
                        f"[CHANNEL:{self.name.upper()}] watermark held at {since} "
                        f"(success={result.success}, retryable_errors={result.retryable_errors})"
                    )
                else:
                    mark_synced(self.session, self.marketplace, started_at)
                return result
        except SyncInProgressError as e:
            return SyncResult.failure(e.message, error_code=e.error_code)

    def sync(self) -> SyncResult:
        """활성화된 카테고리를 products → orders → inventory 순서로 동기화"""
        categories = self.enabled_categories()
        if not categories:
            return SyncResult(success=True, message=f"No sync categories enabled for {self.name}")
        return self._run(categories, combine=True)

    def sync_products(self) -> SyncResult:
        return self._run(["products"], combine=False)

    def sync_orders(self) -> SyncResult:
        return self._run(["orders"], combine=False)

    def sync_inventory(self) -> SyncResult:
        return self._run(["inventory"], combine=False)

    def sync_category(self, category: str) -> SyncResult:
        if category not in CATEGORIES:
            raise ValueError(f"Unknown sync category: {category}")
        return self._run([category], combine=False)

    # ---- 기타 -----------------------------------------------------------

    def health_check(self) -> HealthCheckResult:
        if self.state is ChannelState.CLOSED:
            raise ChannelStateError(f"{self.name} channel is closed", state=self.state.value)
        return self._apply_health(self.client.health_check())

    def update_inventory(self, sku: str, quantity: int) -> SyncResult:
        """로컬 수량을 마켓에 반영 (push)"""
        not_ready = self._ensure_ready()
        if not_ready is not None:
            return SyncResult.failure(not_ready.message)
        try:
            message = self.client.update_inventory(sku, quantity)
        except InventorySyncError as e:
            logger.error(f"[CHANNEL:{self.name.upper()}] inventory push failed for {sku}: {e.message}")
            return SyncResult.failure(f"Failed to update inventory on {self.name}: {e.message}", category="inventory")
        return SyncResult(success=True, message=message, synced_count=1, category="inventory")

    def get_product(self, sku: str) -> dict | None:
        not_ready = self._ensure_ready()
        if not_ready is not None:
            raise ChannelStateError(f"{self.name} channel not ready: {not_ready.message}", state=self.state.value)
        return self.client.get_product(sku)


def build_channel(session: Session, marketplace: Marketplace, **client_options: Any) -> Channel:
    """
    marketplaces.settings를 타입별 모델로 검증한 뒤 채널을 만듭니다.
    client_options는 클라이언트 생성자로 전달됩니다 (transport, sleep 등).
    """
    creds = parse_marketplace_settings(marketplace)
    config = ChannelConfig.from_settings(creds)

    if isinstance(creds, MyntraSettings):
        client = MyntraClient(
            merchant_id=creds.merchant_id,
            secret_key=creds.secret_key,
            warehouse_id=creds.warehouse_id,
            **client_options,
        )
        handler = MyntraSyncHandler(session=session, marketplace=marketplace, client=client, config=config)
    elif isinstance(creds, ShopifySettings):
        client = ShopifyClient(
            store_url=creds.store_url,
            admin_api_token=creds.admin_api_token,
            api_version=creds.api_version,
            **client_options,
        )
        handler = ShopifySyncHandler(session=session, marketplace=marketplace, client=client, config=config)
    else:
        raise ValueError(f"Unsupported marketplace type: {marketplace.type}")

    return Channel(session, marketplace, handler, config)
