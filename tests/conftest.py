"""Pytest configuration and fixtures."""

import os

# 앱 모듈이 import 되기 전에 테스트용 DB URL을 지정 (실제 Postgres에 붙지 않도록)
os.environ.setdefault("DATABASE_URL", "sqlite://")

from typing import Any, Callable

import httpx
import pytest
from sqlalchemy import JSON, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from inventory_sync.models import Base, Inventory, Marketplace, Product


# 테스트용 메모리 SQLite 엔진 (API 테스트의 워커 스레드와 같은 커넥션을 공유)
test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False  # 테스트 로그 줄이기
)


@event.listens_for(test_engine, "connect")
def _disable_pysqlite_autobegin(dbapi_connection, connection_record):
    # SAVEPOINT가 동작하도록 BEGIN을 SQLAlchemy가 직접 내보낸다
    dbapi_connection.isolation_level = None


@event.listens_for(test_engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestSessionLocal = sessionmaker(
    bind=test_engine,
    autoflush=False,
    expire_on_commit=False,
)


def _patch_jsonb_to_json(base):
    """
    SQLite에서 JSONB를 JSON으로 변경하여 컴파일 오류 방지.
    테스트용으로만 사용.
    """
    from sqlalchemy.dialects.postgresql import JSONB

    for table in base.metadata.sorted_tables:
        for column in table.columns:
            if isinstance(column.type, JSONB):
                column.type = JSON()


@pytest.fixture(scope="function")
def test_session() -> Session:
    """
    테스트용 데이터베이스 세션 fixture.
    각 테스트마다 새로운 메모리 DB 생성.
    """
    _patch_jsonb_to_json(Base)
    Base.metadata.create_all(bind=test_engine)

    session = TestSessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def db_session(test_session: Session):
    """test_session alias."""
    yield test_session


# --------------------------------------------------------------------------
# 가짜 마켓 API (httpx.MockTransport)
# --------------------------------------------------------------------------

Reply = Callable[[httpx.Request], httpx.Response]


def reply(status: int = 200, json: Any = None, headers: dict | None = None, text: str | None = None) -> Reply:
    """요청마다 새 Response를 만드는 응답 팩토리"""
    def _build(request: httpx.Request) -> httpx.Response:
        if text is not None:
            return httpx.Response(status, text=text, headers=headers)
        return httpx.Response(status, json=json if json is not None else {}, headers=headers)
    return _build


class FakeMarketplaceAPI:
    """
    (method, path)별 응답 큐. 마지막 응답은 계속 반복됩니다.
    등록되지 않은 경로는 404.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], list[Reply]] = {}
        self.calls: list[httpx.Request] = []

    def on(self, method: str, path: str, *replies: Reply) -> "FakeMarketplaceAPI":
        self.routes[(method.upper(), path)] = list(replies)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        queue = self.routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"error": "not found"})
        responder = queue.pop(0) if len(queue) > 1 else queue[0]
        return responder(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def count(self, method: str, path: str) -> int:
        return sum(1 for r in self.calls if r.method == method.upper() and r.url.path == path)


@pytest.fixture
def fake_api() -> FakeMarketplaceAPI:
    return FakeMarketplaceAPI()


@pytest.fixture
def sleeps() -> list[float]:
    """sleep 대신 대기 시간을 기록"""
    return []


@pytest.fixture
def client_options(fake_api, sleeps) -> dict:
    return {"transport": fake_api.transport, "sleep": sleeps.append}


# --------------------------------------------------------------------------
# 데이터 fixture
# --------------------------------------------------------------------------

MYNTRA_BASE = "/api/v1"
SHOPIFY_BASE = "/admin/api/2024-01"


@pytest.fixture
def myntra_marketplace(test_session: Session) -> Marketplace:
    marketplace = Marketplace(
        name="Myntra Store",
        type="myntra",
        status="active",
        settings={"merchantId": "M-100", "secretKey": "s3cret", "warehouseId": "A-129"},
    )
    test_session.add(marketplace)
    test_session.commit()
    return marketplace


@pytest.fixture
def shopify_marketplace(test_session: Session) -> Marketplace:
    marketplace = Marketplace(
        name="Shopify Store",
        type="shopify",
        status="active",
        store_url="https://test-shop.myshopify.com/",
        settings={"adminApiToken": "shpat_test"},
    )
    test_session.add(marketplace)
    test_session.commit()
    return marketplace


def make_stocked_product(session: Session, marketplace: Marketplace, sku: str = "SKU-1", quantity: int = 20) -> Product:
    product = Product(sku=sku, name=f"Product {sku}", base_price=100.0)
    session.add(product)
    session.flush()
    session.add(
        Inventory(
            product_id=product.id,
            marketplace_id=marketplace.id,
            quantity=quantity,
            price=100.0,
            low_stock_threshold=10,
            status="in_stock" if quantity > 10 else ("low_stock" if quantity > 0 else "out_of_stock"),
        )
    )
    session.commit()
    return product


# 테스트 마커 정의
def pytest_configure(config):
    """Pytest 마커 등록."""
    config.addinivalue_line("markers", "unit: 단위 테스트 (DB 불필요)")
    config.addinivalue_line("markers", "integration: 통합 테스트 (SQLite + 가짜 마켓 API)")
    config.addinivalue_line("markers", "slow: 느린 테스트 (> 1분)")
