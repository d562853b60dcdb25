from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SyncResult(BaseModel):
    """
    동기화 1회(카테고리 또는 채널 전체)의 결과. DB에 저장되지 않습니다.
    """
    success: bool
    message: str
    synced_count: int = 0
    errors: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    details: List["SyncResult"] = Field(default_factory=list)
    # 재시도로 해소될 수 있는 아이템 실패 수. 워터마크 전진 여부 판단에만 사용
    retryable_errors: int = Field(default=0, exclude=True)
    # 실패 원인 코드 (SYNC_IN_PROGRESS 등). API 상태 코드 매핑용
    error_code: Optional[str] = Field(default=None, exclude=True)

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @property
    def holds_watermark(self) -> bool:
        return not self.success or self.retryable_errors > 0

    @classmethod
    def failure(
        cls,
        message: str,
        category: Optional[str] = None,
        errors: Optional[List[str]] = None,
        error_code: Optional[str] = None,
    ) -> "SyncResult":
        return cls(success=False, message=message, category=category, errors=errors or [], error_code=error_code)

    @classmethod
    def combine(cls, results: Iterable["SyncResult"], source: str) -> "SyncResult":
        results = list(results)
        total = sum(r.synced_count for r in results)
        errors: List[str] = []
        for r in results:
            errors.extend(r.errors)
        success = all(r.success for r in results)
        if success:
            suffix = f" ({len(errors)} errors)" if errors else ""
            message = f"Successfully synced {total} items from {source}{suffix}"
        else:
            message = f"Sync completed with errors. {total} items synced, {len(errors)} errors"
        return cls(
            success=success,
            message=message,
            synced_count=total,
            errors=errors,
            details=results,
            retryable_errors=sum(r.retryable_errors for r in results),
        )


class HealthCheckResult(BaseModel):
    success: bool
    message: str
    latency_ms: Optional[int] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
