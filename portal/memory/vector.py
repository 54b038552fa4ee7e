"""
记忆系统 - 向量相似度

全量扫描，不建索引。向量在模型中是 list[float]，只在存储边界序列化为 JSON。
"""
import json
from typing import Iterable, List, Optional, Sequence, Tuple, TypeVar

import numpy as np

T = TypeVar("T")


def encode_embedding(embedding: Sequence[float]) -> str:
    return json.dumps([float(x) for x in embedding])


def decode_embedding(raw: Optional[str]) -> Optional[List[float]]:
    if not raw:
        return None
    return [float(x) for x in json.loads(raw)]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    余弦相似度

    Raises:
        ValueError: 两个向量长度不同
    """
    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)

    if vec_a.shape != vec_b.shape:
        raise ValueError(f"Vectors must have same length: {len(vec_a)} != {len(vec_b)}")

    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)

    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(vec_a, vec_b) / (norm_a * norm_b))


def rank_by_similarity(
    query: Sequence[float],
    candidates: Iterable[Tuple[T, Sequence[float]]],
    min_similarity: float = 0.5,
    limit: int = 10,
) -> List[Tuple[T, float]]:
    """按相似度过滤、降序排序并截断"""
    scored = []
    for item, embedding in candidates:
        similarity = cosine_similarity(query, embedding)
        if similarity >= min_similarity:
            scored.append((item, similarity))

    # sort 是稳定的：相似度相同时保持候选顺序
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:limit]
