"""
用户与访问口令

登录由上游认证服务完成，这里只处理：
- 门户口令（settings.portal_key，未配置时对所有人开放）
- 首次出现的用户自动建档
- 所有权检查
"""
import hmac
import logging
from datetime import datetime
from typing import Optional

import aiosqlite

from .config import settings
from .database import get_db, now_iso
from .errors import AuthorizationError
from .models import User

logger = logging.getLogger(__name__)


# ==================== 门户口令 ====================

def check_portal_key(portal_key: Optional[str]) -> bool:
    """口令是否有效（不抛异常）"""
    required = settings.portal_key
    if not required:
        return True
    if portal_key is None:
        return False
    return hmac.compare_digest(portal_key.encode(), required.encode())


def verify_portal_key(portal_key: Optional[str]):
    """
    校验门户口令

    Raises:
        AuthorizationError: 已配置口令且不匹配
    """
    if not check_portal_key(portal_key):
        logger.warning("门户口令不匹配，拒绝访问")
        raise AuthorizationError("Invalid portal key. Access denied.")


# ==================== 用户 ====================

def _row_to_user(row: aiosqlite.Row) -> User:
    return User(
        user_id=row["user_id"],
        name=row["name"],
        email=row["email"],
        image=row["image"],
        is_admin=bool(row["is_admin"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


async def get_user(user_id: str) -> Optional[User]:
    async with get_db() as db:
        cursor = await db.execute("SELECT * FROM users WHERE user_id = ?", (user_id,))
        row = await cursor.fetchone()
    return _row_to_user(row) if row else None


async def ensure_user(
    user_id: str,
    name: Optional[str] = None,
    email: Optional[str] = None,
) -> User:
    """首次出现的用户自动建档；已存在则原样返回"""
    if not user_id:
        raise AuthorizationError("Unauthenticated")

    async with get_db() as db:
        await db.execute("""
            INSERT OR IGNORE INTO users (user_id, name, email, is_admin, created_at)
            VALUES (?, ?, ?, 0, ?)
        """, (user_id, name, email, now_iso()))
        await db.commit()

    return await get_user(user_id)


async def update_profile(
    user_id: str,
    name: Optional[str] = None,
    avatar: Optional[str] = None,
) -> User:
    """修改显示名 / 头像（只更新传入的字段）"""
    user = await get_user(user_id)
    if user is None:
        raise AuthorizationError("Unauthenticated")

    async with get_db() as db:
        await db.execute(
            "UPDATE users SET name = ?, image = ? WHERE user_id = ?",
            (
                name if name is not None else user.name,
                avatar if avatar is not None else user.image,
                user_id,
            ),
        )
        await db.commit()

    return await get_user(user_id)


async def is_admin(user_id: Optional[str]) -> bool:
    if not user_id:
        return False
    user = await get_user(user_id)
    return user.is_admin if user else False


async def set_admin(user_id: str, admin: bool = True):
    async with get_db() as db:
        await db.execute(
            "UPDATE users SET is_admin = ? WHERE user_id = ?", (int(admin), user_id)
        )
        await db.commit()


def require_owner(owner_id: str, user_id: Optional[str]):
    """
    Raises:
        AuthorizationError: user_id 为空或不是资源所有者
    """
    if not user_id:
        raise AuthorizationError("Unauthenticated")
    if owner_id != user_id:
        raise AuthorizationError("Not the owner of this resource")
