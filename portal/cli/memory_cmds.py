"""
Portal CLI — 记忆相关命令
"""
import json
import sys
from typing import List, Optional

import httpx
import typer
from rich.panel import Panel
from rich.table import Table

from .common import console, run, truncate


def _print_memories(memories):
    for i, memory in enumerate(memories, 1):
        console.print(
            f"  {i}. [bold]{memory.title}[/bold] "
            f"[cyan]{memory.type.value}[/cyan] [dim]{memory.memory_id} · {memory.resonance:.2f}[/dim]"
        )
        if memory.summary:
            console.print(f"      [dim]{truncate(memory.summary, 80)}[/dim]")


def register(app: typer.Typer):
    """注册记忆相关子命令"""

    @app.command()
    def recall(
        query: Optional[str] = typer.Argument(None, help="搜索关键词（为空时列出最重要的记忆）"),
        limit: int = typer.Option(10, "-n", "--limit", help="结果数量"),
        memory_type: Optional[str] = typer.Option(None, "--type", "-t", help="只搜索某类记忆"),
    ):
        """🧠 搜索记忆"""
        from ..memory import store
        from ..memory.models import MemoryType

        if query:
            console.print(f"\n[bold]🔍 搜索: [cyan]{query}[/cyan][/bold]\n")
            type_filter = MemoryType(memory_type) if memory_type else None
            results = run(store.search(query, type=type_filter, limit=limit))
        else:
            console.print("\n[bold]⭐ 最重要的记忆:[/bold]\n")
            results = run(store.list_top(limit))

        if not results:
            console.print("[yellow]未找到相关记忆[/yellow]")
            return

        _print_memories(results)
        console.print(f"\n[dim]共 {len(results)} 条[/dim]")

    @app.command()
    def context(
        message: List[str] = typer.Option([], "--message", "-m", help="最近的消息（可多次传入）"),
        user_id: Optional[str] = typer.Option(None, "--user", "-u", help="用户 ID"),
    ):
        """🧩 编译记忆上下文"""
        from ..memory.context import compile_context

        compiled = run(compile_context(user_id=user_id, recent_messages=message or None))
        if not compiled.context:
            console.print("[yellow]没有可用的记忆上下文[/yellow]")
        else:
            console.print(Panel(compiled.context, title="Memory Context", border_style="cyan"))
        console.print(
            f"[dim]{compiled.memory_count} 条记忆 · resonance {compiled.total_resonance:.2f} · "
            f"{compiled.generation_time_ms}ms[/dim]"
        )

    @app.command()
    def connected(
        memory_id: str = typer.Argument(..., help="起点记忆 ID"),
        depth: int = typer.Option(1, "--depth", "-d", help="遍历深度"),
    ):
        """🕸️ 查看相连的记忆"""
        from ..memory.links import traverse

        try:
            results = run(traverse(memory_id, depth))
        except ValueError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)

        if not results:
            console.print("[yellow]没有相连的记忆[/yellow]")
            return

        for item in results:
            path = " → ".join(link.value for link in item.path)
            console.print(f"  {'  ' * (item.depth - 1)}[bold]{item.memory_id}[/bold] [dim]({path})[/dim]")

    @app.command("semantic-search")
    def semantic_search_cmd(
        query: str = typer.Argument(..., help="查询文本"),
        limit: int = typer.Option(10, "-n", "--limit", help="结果数量"),
        min_similarity: float = typer.Option(0.5, "--min", help="最低相似度"),
    ):
        """🔮 语义搜索"""
        from ..errors import PortalError
        from ..memory.semantic import semantic_search

        try:
            results = run(semantic_search(query, limit=limit, min_similarity=min_similarity))
        except PortalError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)

        if not results:
            console.print("[yellow]没有足够相似的记忆[/yellow]")
            return

        table = Table(title=f"🔮 {query}")
        table.add_column("Similarity", justify="right")
        table.add_column("Memory")
        table.add_column("Type")
        table.add_column("Summary")
        for item in results:
            table.add_row(
                f"{item.similarity:.3f}", item.title, item.type.value,
                truncate(item.summary or "", 60),
            )
        console.print(table)

    @app.command("embed-all")
    def embed_all():
        """🧠 为所有缺少向量的记忆生成向量"""
        from ..errors import PortalError
        from ..memory.semantic import embed_all_memories

        try:
            summary = run(embed_all_memories())
        except PortalError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)

        console.print(
            f"[green]✅ 已向量化 {summary.embedded}/{summary.total_memories} 条记忆 "
            f"({summary.total_tokens} tokens)[/green]"
        )
        if summary.failed:
            console.print(f"[yellow]⚠️ {summary.failed} 条失败[/yellow]")

    @app.command("process-document")
    def process_document_cmd(
        payload: str = typer.Argument(
            ..., help='JSON: {"content", "documentName", "documentType", "autoStore"}'
        ),
    ):
        """📄 处理一段文档并输出 JSON 结果（供 ingest 调用）"""
        from ..errors import PortalError
        from ..llm.extraction import ProcessDocumentResult, process_document

        try:
            args = json.loads(payload)
            result = run(process_document(
                args["content"],
                args["documentName"],
                args.get("documentType"),
                bool(args.get("autoStore", False)),
            ))
        except (json.JSONDecodeError, KeyError) as e:
            result = ProcessDocumentResult(success=False, error=f"Invalid payload: {e}")
        except (PortalError, httpx.HTTPError) as e:
            result = ProcessDocumentResult(success=False, error=str(e) or type(e).__name__)

        sys.stdout.write(result.model_dump_json(by_alias=True) + "\n")
