from pydantic import BaseModel

MANAGER_ROLES = ("admin", "manager")


class CallerIdentity(BaseModel):
    """상위 인증 계층이 넘겨주는 호출자 정보 (이 서비스는 검증하지 않고 그대로 사용)"""
    id: str
    role: str = "viewer"
