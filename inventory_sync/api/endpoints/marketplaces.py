"""
마켓 연결 생성/삭제 API
"""
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from inventory_sync.api.deps import require_manager
from inventory_sync.db import get_session, transaction
from inventory_sync.errors import CredentialsError, MarketplaceNotFoundError, PersistenceError
from inventory_sync.models import Marketplace
from inventory_sync.persistence import delete_marketplace
from inventory_sync.schemas.caller import CallerIdentity
from inventory_sync.schemas.marketplace import MarketplaceCreate, MarketplaceResponse, parse_marketplace_settings

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=MarketplaceResponse, status_code=201)
def create_marketplace(
    payload: MarketplaceCreate,
    session: Session = Depends(get_session),
    caller: CallerIdentity = Depends(require_manager),
):
    """
    마켓 연결을 등록합니다. 자격 증명은 저장 전에 타입별 모델로 검증됩니다.
    """
    marketplace = Marketplace(
        name=payload.name,
        type=payload.type,
        store_url=payload.store_url,
        settings=dict(payload.settings),
        status="active",
    )
    try:
        parse_marketplace_settings(marketplace)
    except CredentialsError as e:
        raise HTTPException(status_code=400, detail=e.message)

    try:
        with transaction(session, "create_marketplace"):
            session.add(marketplace)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=e.message)

    session.refresh(marketplace)
    logger.info(f"[API] marketplace {marketplace.id} ({marketplace.type}) created by {caller.id}")
    return marketplace


@router.delete("/{marketplace_id}", status_code=204)
def remove_marketplace(
    marketplace_id: uuid.UUID,
    session: Session = Depends(get_session),
    caller: CallerIdentity = Depends(require_manager),
):
    """
    마켓과 그 재고/주문/재고 조정 이력을 한 트랜잭션으로 삭제합니다.
    """
    try:
        delete_marketplace(session, marketplace_id)
    except MarketplaceNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except PersistenceError as e:
        raise HTTPException(status_code=500, detail=e.message)
    logger.info(f"[API] marketplace {marketplace_id} deleted by {caller.id}")
    return Response(status_code=204)
