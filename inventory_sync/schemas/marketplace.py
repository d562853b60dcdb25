from datetime import datetime
from typing import Annotated, Literal, Optional, Union
import uuid

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from inventory_sync.errors import CredentialsError
from inventory_sync.models import Marketplace
from inventory_sync.settings import settings as app_settings


class ChannelOptions(BaseModel):
    """채널 공통 동기화 옵션 (marketplaces.settings에 자격 증명과 함께 저장)"""
    sync_products: bool = True
    sync_orders: bool = True
    sync_inventory: bool = True
    auto_sync_interval: Optional[int] = Field(default=None, ge=1)  # 분
    low_stock_threshold: Optional[int] = Field(default=None, ge=0)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True)


class MyntraSettings(ChannelOptions):
    type: Literal["myntra"] = "myntra"
    merchant_id: str = Field(min_length=1)
    secret_key: str = Field(min_length=1, repr=False)
    warehouse_id: Optional[str] = None


class ShopifySettings(ChannelOptions):
    type: Literal["shopify"] = "shopify"
    store_url: str = Field(min_length=1)
    admin_api_token: str = Field(min_length=1, repr=False)
    api_version: Optional[str] = None

    @field_validator("store_url")
    @classmethod
    def strip_store_url(cls, v: str) -> str:
        v = v.strip()
        for prefix in ("https://", "http://"):
            if v.startswith(prefix):
                v = v[len(prefix):]
        return v.rstrip("/")


MarketplaceSettings = Annotated[Union[MyntraSettings, ShopifySettings], Field(discriminator="type")]

_settings_adapter = TypeAdapter(MarketplaceSettings)


def parse_marketplace_settings(marketplace: Marketplace) -> MyntraSettings | ShopifySettings:
    """
    marketplaces.settings(JSON)를 타입별 자격 증명 모델로 검증합니다.
    동기화 경로에 들어가기 전에 실패하도록 채널 생성 시점에 호출됩니다.
    """
    raw = dict(marketplace.settings or {})
    declared = raw.get("type")
    if declared and declared != marketplace.type:
        raise CredentialsError(
            f"Settings type '{declared}' does not match marketplace type '{marketplace.type}'",
            marketplace_type=marketplace.type,
        )
    raw["type"] = marketplace.type
    if marketplace.type == "shopify" and not (raw.get("store_url") or raw.get("storeUrl")):
        raw["store_url"] = marketplace.store_url or ""

    try:
        return _settings_adapter.validate_python(raw)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        raise CredentialsError(
            f"{marketplace.type} credentials not configured or invalid ({fields})",
            marketplace_type=marketplace.type,
        ) from e


class ChannelConfig(BaseModel):
    """
    채널 인스턴스 생성 시 한 번 만들어지는 불변 설정값.
    변경이 필요하면 with_changes()로 새 값을 만듭니다.
    """
    sync_products: bool = True
    sync_orders: bool = True
    sync_inventory: bool = True
    auto_sync_interval: int = Field(default=60, ge=1)
    low_stock_threshold: int = Field(default=10, ge=0)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_settings(cls, options: ChannelOptions) -> "ChannelConfig":
        return cls(
            sync_products=options.sync_products,
            sync_orders=options.sync_orders,
            sync_inventory=options.sync_inventory,
            auto_sync_interval=options.auto_sync_interval or app_settings.default_auto_sync_interval,
            low_stock_threshold=(
                options.low_stock_threshold
                if options.low_stock_threshold is not None
                else app_settings.low_stock_threshold
            ),
        )

    def with_changes(self, **changes) -> "ChannelConfig":
        return ChannelConfig.model_validate({**self.model_dump(), **changes})


class MarketplaceCreate(BaseModel):
    name: str = Field(min_length=1)
    type: Literal["myntra", "shopify"]
    store_url: Optional[str] = None
    settings: dict = Field(default_factory=dict)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MarketplaceResponse(BaseModel):
    id: uuid.UUID
    name: str
    type: str
    status: str
    store_url: Optional[str] = None
    connected_at: Optional[datetime] = None
    last_sync: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)
