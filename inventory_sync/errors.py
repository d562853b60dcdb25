"""
Sync Engine Exception Classes

마켓 동기화/재고 조정 경로에서 사용하는 구조화된 예외 정의.
아이템 단위 오류(ItemValidationError 등)는 배치 안에서 복구되고,
나머지는 호출자에게 전파됩니다.
"""
from typing import Optional, Dict, Any, List


class InventorySyncError(Exception):
    """
    Base exception for all sync engine errors

    Attributes:
        message: 에러 메시지
        error_code: 에러 코드
        context: 추가 컨텍스트 정보
        recoverable: 다음 실행에서 재시도하면 해소될 수 있는지 여부
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        recoverable: bool = False
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.context = context or {}
        self.recoverable = recoverable
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """에러 정보를 딕셔너리로 변환"""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "recoverable": self.recoverable
        }


class MarketplaceAPIError(InventorySyncError):
    """
    단일 HTTP 시도 실패 (non-2xx, 네트워크 오류, JSON 파싱 실패)

    Attributes:
        status_code: HTTP 상태 코드 (네트워크 오류면 None)
        url: 요청 URL
        response_body: 응답 본문 (최대 500자)
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        response_body: Optional[str] = None,
    ):
        if response_body and len(response_body) > 500:
            response_body = response_body[:500]
        super().__init__(
            message=message,
            error_code="MARKETPLACE_API_ERROR",
            context={"status_code": status_code, "url": url, "response_body": response_body},
            recoverable=True
        )
        self.status_code = status_code
        self.url = url
        self.response_body = response_body


class TransientAPIError(InventorySyncError):
    """
    재시도 예산을 모두 소진한 외부 API 오류

    Attributes:
        last_error: 마지막 시도에서 발생한 원래 예외
        attempts: 실제 시도 횟수
    """

    def __init__(self, message: str, last_error: Optional[BaseException] = None, attempts: int = 0):
        super().__init__(
            message=message,
            error_code="TRANSIENT_API_ERROR",
            context={"attempts": attempts, "last_error": str(last_error) if last_error else None},
            recoverable=True
        )
        self.last_error = last_error
        self.attempts = attempts


class ShapeMismatchError(InventorySyncError):
    """
    외부 응답이 알려진 어떤 envelope 구조와도 맞지 않음

    Attributes:
        observed_keys: 실제로 관찰된 최상위 키 목록
    """

    def __init__(self, observed_keys: List[str], entity: str = "records"):
        keys = ", ".join(observed_keys) if observed_keys else "<none>"
        super().__init__(
            message=f"Unexpected API response structure. Expected {entity} array, got: {keys}",
            error_code="SHAPE_MISMATCH",
            context={"observed_keys": observed_keys, "entity": entity},
        )
        self.observed_keys = observed_keys


class ItemValidationError(InventorySyncError):
    """단일 레코드가 기본 검증(sku/name 누락, 가격 <= 0 등)을 통과하지 못함"""

    def __init__(self, message: str, identifier: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="ITEM_VALIDATION_ERROR",
            context={"identifier": identifier},
        )
        self.identifier = identifier


class InventoryNotFoundError(InventorySyncError):
    def __init__(self, product_id: Any, marketplace_id: Any):
        super().__init__(
            message=f"Inventory record not found for product {product_id} on marketplace {marketplace_id}",
            error_code="INVENTORY_NOT_FOUND",
            context={"product_id": str(product_id), "marketplace_id": str(marketplace_id)},
        )


class InsufficientStockError(InventorySyncError):
    """감소 조정이 현재 재고보다 커서 수량이 음수가 되는 경우"""

    def __init__(self, current: int, requested: int):
        super().__init__(
            message=f"Insufficient stock: current quantity {current}, requested decrease {requested}",
            error_code="INSUFFICIENT_STOCK",
            context={"current": current, "requested": requested},
        )
        self.current = current
        self.requested = requested


class PersistenceError(InventorySyncError):
    """
    Database operation failures

    Attributes:
        operation: 수행하려던 작업 (upsert_product, adjust_stock, ...)
    """

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(
            message=message,
            error_code="PERSISTENCE_ERROR",
            context={"operation": operation},
            recoverable=True
        )
        self.operation = operation


class ChannelStateError(InventorySyncError):
    def __init__(self, message: str, state: Optional[str] = None):
        super().__init__(message=message, error_code="CHANNEL_STATE_ERROR", context={"state": state})
        self.state = state


class SyncInProgressError(InventorySyncError):
    def __init__(self, marketplace_id: Any):
        super().__init__(
            message=f"Sync already in progress for marketplace {marketplace_id}",
            error_code="SYNC_IN_PROGRESS",
            context={"marketplace_id": str(marketplace_id)},
            recoverable=True
        )


class CredentialsError(InventorySyncError):
    def __init__(self, message: str, marketplace_type: Optional[str] = None):
        super().__init__(message=message, error_code="CREDENTIALS_ERROR", context={"type": marketplace_type})


class MarketplaceNotFoundError(InventorySyncError):
    def __init__(self, marketplace_id: Any):
        super().__init__(
            message=f"Marketplace not found: {marketplace_id}",
            error_code="MARKETPLACE_NOT_FOUND",
            context={"marketplace_id": str(marketplace_id)},
        )


def is_retryable(error: BaseException) -> bool:
    """다음 실행에서 다시 시도하면 해소될 수 있는 오류인지 판단"""
    return isinstance(error, (TransientAPIError, PersistenceError, MarketplaceAPIError))
