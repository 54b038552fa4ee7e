"""
文档导入

- chunker: 按段落 / 句子切块
- readers: .md / .txt / .docx 读取与目录扫描
- runner: 逐块提交给文档处理入口，汇总结果
"""
from .chunker import chunk_content

__all__ = ["chunk_content"]
