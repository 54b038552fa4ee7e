"""
记忆系统 - 用户画像

每个用户一条画像：事实（精确去重）、偏好、兴趣、关系笔记（只追加）、最近一次互动摘要。
"""
import json
from datetime import datetime
from typing import List, Optional

import aiosqlite

from ..database import get_db, now_iso
from .models import SubjectProfile


def _row_to_profile(row: aiosqlite.Row) -> SubjectProfile:
    return SubjectProfile(
        user_id=row["user_id"],
        name=row["name"],
        facts=json.loads(row["facts"]),
        preferences=row["preferences"],
        interests=json.loads(row["interests"]),
        relationship_notes=row["relationship_notes"],
        last_interaction_summary=row["last_interaction_summary"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


async def _fetch(db: aiosqlite.Connection, user_id: str) -> Optional[SubjectProfile]:
    cursor = await db.execute(
        "SELECT * FROM subject_profiles WHERE user_id = ?", (user_id,)
    )
    row = await cursor.fetchone()
    return _row_to_profile(row) if row else None


async def _save(db: aiosqlite.Connection, profile: SubjectProfile):
    await db.execute("""
        INSERT INTO subject_profiles
        (user_id, name, facts, preferences, interests, relationship_notes,
         last_interaction_summary, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(user_id) DO UPDATE SET
            name = excluded.name,
            facts = excluded.facts,
            preferences = excluded.preferences,
            interests = excluded.interests,
            relationship_notes = excluded.relationship_notes,
            last_interaction_summary = excluded.last_interaction_summary,
            updated_at = excluded.updated_at
    """, (
        profile.user_id,
        profile.name,
        json.dumps(profile.facts, ensure_ascii=False),
        profile.preferences,
        json.dumps(profile.interests, ensure_ascii=False),
        profile.relationship_notes,
        profile.last_interaction_summary,
        profile.created_at.isoformat(),
        now_iso(),
    ))


async def get_profile(user_id: str) -> Optional[SubjectProfile]:
    """获取用户画像"""
    async with get_db() as db:
        return await _fetch(db, user_id)


async def update_profile(
    user_id: str,
    name: Optional[str] = None,
    facts: Optional[List[str]] = None,
    preferences: Optional[str] = None,
    interests: Optional[List[str]] = None,
    relationship_notes: Optional[str] = None,
    last_interaction_summary: Optional[str] = None,
) -> SubjectProfile:
    """部分更新（None 表示不改）；画像不存在则创建"""
    async with get_db() as db:
        await db.execute("BEGIN IMMEDIATE")
        profile = await _fetch(db, user_id) or SubjectProfile(user_id=user_id)

        if name is not None:
            profile.name = name
        if facts is not None:
            profile.facts = facts
        if preferences is not None:
            profile.preferences = preferences
        if interests is not None:
            profile.interests = interests
        if relationship_notes is not None:
            profile.relationship_notes = relationship_notes
        if last_interaction_summary is not None:
            profile.last_interaction_summary = last_interaction_summary

        await _save(db, profile)
        await db.commit()
        return await _fetch(db, user_id)


async def add_fact(user_id: str, fact: str) -> bool:
    """
    追加一条事实（精确字符串去重）

    Returns:
        True 表示新增，False 表示已存在
    """
    async with get_db() as db:
        await db.execute("BEGIN IMMEDIATE")
        profile = await _fetch(db, user_id) or SubjectProfile(user_id=user_id)
        if fact in profile.facts:
            await db.rollback()
            return False
        profile.facts.append(fact)
        await _save(db, profile)
        await db.commit()
        return True


async def append_relationship_notes(user_id: str, notes: str):
    """追加关系笔记，用空行分隔"""
    async with get_db() as db:
        await db.execute("BEGIN IMMEDIATE")
        profile = await _fetch(db, user_id) or SubjectProfile(user_id=user_id)
        if profile.relationship_notes:
            profile.relationship_notes = f"{profile.relationship_notes}\n\n{notes}"
        else:
            profile.relationship_notes = notes
        await _save(db, profile)
        await db.commit()
