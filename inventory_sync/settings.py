from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = "postgresql+psycopg://localhost/inventory_sync"

    # HTTP 클라이언트 공통
    http_timeout: float = 60.0
    http_connect_timeout: float = 10.0
    request_max_attempts: int = 3  # 429를 제외한 실패 재시도 예산
    retry_base_delay: float = 1.0  # attempt * base 선형 대기
    rate_limit_default_wait: float = 5.0  # Retry-After 헤더가 없을 때
    rate_limit_max_waits: int = 10  # 한 attempt 안에서 연속 429 대기 상한
    request_deadline: float = 300.0  # 재시도 포함 request() 1회 전체 상한 (초)

    # 재고
    low_stock_threshold: int = 10

    # 동기화
    sync_page_size: int = 250
    sync_max_pages: int = 50
    default_auto_sync_interval: int = 60  # 분
    scheduler_max_workers: int = 4

    # 마켓별 기본값
    shopify_api_version: str = "2024-01"
    myntra_api_base_url: str = "https://seller.myntra.com/api/v1"
    myntra_default_warehouse_id: str = "A-129"

    @field_validator("database_url")
    @classmethod
    def validate_db_url(cls, v: str) -> str:
        if not v.startswith(("postgresql", "sqlite")):
            raise ValueError("DB URL은 'postgresql' 또는 'sqlite'로 시작해야 합니다.")
        return v

    @field_validator("myntra_api_base_url")
    @classmethod
    def validate_http_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL은 'http://' 또는 'https://'로 시작해야 합니다.")
        return v.rstrip("/")

    @field_validator(
        "http_timeout",
        "http_connect_timeout",
        "retry_base_delay",
        "rate_limit_default_wait",
        "request_deadline",
    )
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("대기 시간은 0 이상이어야 합니다.")
        return v

    @field_validator("request_max_attempts", "rate_limit_max_waits", "sync_max_pages", "scheduler_max_workers")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("값은 1 이상이어야 합니다.")
        return v

    @field_validator("sync_page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        if not 1 <= v <= 250:
            raise ValueError("sync_page_size는 1에서 250 사이여야 합니다.")
        return v

    @field_validator("low_stock_threshold", "default_auto_sync_interval")
    @classmethod
    def validate_threshold(cls, v: int) -> int:
        if v < 0:
            raise ValueError("값은 0 이상이어야 합니다.")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=False)


settings = Settings()
