"""
文档切块

整篇不超过 max_size 直接返回；否则按空行切段落贪心拼接，
单段超长再按句子（. ! ? 后跟空白）切，单句仍超长则按字符硬切。
任何块都不会超过 max_size。
"""
import re
from typing import Iterator, List

_PARAGRAPH_RE = re.compile(r"\n\n+")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")


def _hard_split(text: str, max_size: int) -> Iterator[str]:
    for start in range(0, len(text), max_size):
        yield text[start:start + max_size]


def chunk_content(text: str, max_size: int) -> List[str]:
    if max_size < 1:
        raise ValueError(f"max_size 必须 >= 1: {max_size}")
    if len(text) <= max_size:
        return [text]

    chunks: List[str] = []
    current = ""

    def flush():
        if current.strip():
            chunks.append(current.strip())

    for para in _PARAGRAPH_RE.split(text):
        if len(current) + len(para) + 2 > max_size:
            flush()
            if len(para) > max_size:
                current = ""
                for sentence in _SENTENCE_RE.split(para):
                    for piece in _hard_split(sentence, max_size):
                        if len(current) + len(piece) + 1 > max_size:
                            flush()
                            current = piece
                        else:
                            current += (" " if current else "") + piece
            else:
                current = para
        else:
            current += ("\n\n" if current else "") + para

    flush()
    return chunks
