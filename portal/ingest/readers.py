"""
文档读取
"""
from pathlib import Path
from typing import List

import mammoth

SUPPORTED_EXTENSIONS = {".docx", ".md", ".txt"}


class UnsupportedDocument(ValueError):
    """不支持的文件类型"""


def read_document(path: Path) -> str:
    """读取文档纯文本（.docx 用 mammoth 提取，其余按 UTF-8 读取）"""
    ext = path.suffix.lower()
    if ext == ".docx":
        with open(path, "rb") as f:
            return mammoth.extract_raw_text(f).value
    if ext in (".md", ".txt"):
        return path.read_text(encoding="utf-8")
    raise UnsupportedDocument(f"Unsupported file type: {ext}")


def discover_files(path: Path) -> List[Path]:
    """
    目录：递归查找所有支持的文件（按路径排序）
    文件：原样返回
    """
    if not path.exists():
        raise FileNotFoundError(f"Path not found: {path}")
    if path.is_file():
        return [path]
    return sorted(
        p for p in path.rglob("*")
        if p.is_file() and p.suffix.lower() in SUPPORTED_EXTENSIONS
    )
