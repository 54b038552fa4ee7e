"""
路由公共依赖
"""
from typing import Optional

from fastapi import Header

from ..auth import ensure_user, verify_portal_key
from ..errors import AuthorizationError


async def current_user(x_user_id: Optional[str] = Header(default=None)) -> str:
    """当前调用者；首次出现时自动建档"""
    if not x_user_id:
        raise AuthorizationError("Unauthenticated")
    await ensure_user(x_user_id)
    return x_user_id


async def optional_user(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    return x_user_id or None


async def portal_key(x_portal_key: Optional[str] = Header(default=None)) -> Optional[str]:
    """取口令但不校验（交给具体操作）"""
    return x_portal_key


async def require_portal_key(x_portal_key: Optional[str] = Header(default=None)):
    verify_portal_key(x_portal_key)
