import logging
import uuid
from typing import Callable

from fastapi import Depends, Header, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from inventory_sync.channels import Channel, build_channel
from inventory_sync.errors import CredentialsError
from inventory_sync.models import Marketplace
from inventory_sync.schemas.caller import MANAGER_ROLES, CallerIdentity
from inventory_sync.schemas.sync import SyncResult

logger = logging.getLogger(__name__)

ChannelBuilder = Callable[[Session, Marketplace], Channel]


def get_caller(
    x_caller_id: str | None = Header(default=None),
    x_caller_role: str | None = Header(default=None),
) -> CallerIdentity:
    if not x_caller_id:
        raise HTTPException(status_code=401, detail="호출자 정보(X-Caller-Id)가 없습니다")
    return CallerIdentity(id=x_caller_id, role=(x_caller_role or "viewer").strip().lower())


def require_manager(caller: CallerIdentity = Depends(get_caller)) -> CallerIdentity:
    if caller.role not in MANAGER_ROLES:
        raise HTTPException(status_code=403, detail=f"권한이 없습니다 (role={caller.role})")
    return caller


def get_channel_builder() -> ChannelBuilder:
    return build_channel


def load_channel(session: Session, marketplace_id: uuid.UUID, builder: ChannelBuilder) -> Channel:
    marketplace = session.get(Marketplace, marketplace_id)
    if marketplace is None:
        raise HTTPException(status_code=404, detail=f"마켓을 찾을 수 없습니다: {marketplace_id}")
    try:
        return builder(session, marketplace)
    except CredentialsError as e:
        raise HTTPException(status_code=400, detail=e.message)


def sync_response(result: SyncResult):
    """실패한 SyncResult는 본문을 유지한 채 상태 코드만 바꿔 반환"""
    if result.success:
        return result
    status_code = 409 if result.error_code == "SYNC_IN_PROGRESS" else 500
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json", by_alias=True))
