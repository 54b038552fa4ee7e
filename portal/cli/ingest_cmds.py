"""
Portal CLI — 文档导入
"""
from pathlib import Path

import typer
from rich.panel import Panel
from rich.table import Table

from .common import console, run


def register(app: typer.Typer):
    """注册导入子命令"""

    @app.command()
    def ingest(
        path: Path = typer.Argument(..., help="文件或目录（目录会递归查找 .docx/.md/.txt）"),
        document_type: str = typer.Option(
            "dialogue", "--type", help="文档类型 (transcript, notes, record, dialogue)"
        ),
        dry_run: bool = typer.Option(False, "--dry-run", help="只预览，不写入"),
        embed: bool = typer.Option(False, "--embed", help="导入后生成向量"),
        in_process: bool = typer.Option(
            False, "--in-process", help="在当前进程处理，不启动子进程"
        ),
    ):
        """📥 导入文档到记忆系统"""
        from ..ingest.runner import InProcessProcessor, ingest_path, summary_counts

        console.print(Panel.fit("[bold]MEMORY INGESTION[/bold]", border_style="cyan"))
        console.print(f"🎯 目标: {path}")
        console.print(f"📁 类型: {document_type}")
        if dry_run:
            console.print("[yellow]🔍 DRY RUN - 不会写入任何数据[/yellow]")
        if embed:
            console.print("🧠 导入后生成向量")

        processor = InProcessProcessor() if in_process else None
        try:
            summary = run(ingest_path(
                path, document_type, dry_run=dry_run, embed=embed, processor=processor
            ))
        except FileNotFoundError as e:
            console.print(f"[red]❌ {e}[/red]")
            raise typer.Exit(1)

        if not summary.files:
            console.print("[yellow]⚠️ 没有找到支持的文件 (.docx, .md, .txt)[/yellow]")
            return

        for result in summary.files:
            if result.failed:
                console.print(f"  ❌ {result.path.name}: {result.error or '所有分块都失败'}")
            elif result.skipped:
                console.print(
                    f"  🔍 {result.path.name}: {result.content_length} 字符, "
                    f"{result.chunks} 块"
                )
            else:
                console.print(
                    f"  ✅ {result.path.name}: {result.memories} 记忆, {result.links} 连接, "
                    f"{result.tokens} tokens"
                )
                for update in result.suggested_core_updates:
                    console.print(
                        f"     💡 {update.get('targetFile')}: {update.get('section')}"
                    )

        if summary.embed:
            console.print(
                f"\n🧠 已向量化 {summary.embed.embedded} 条记忆 ({summary.embed.total_tokens} tokens)"
            )
            if summary.embed.failed:
                console.print(f"[yellow]⚠️ {summary.embed.failed} 条向量化失败[/yellow]")
        elif summary.embed_error:
            console.print(f"[red]❌ 向量化失败: {summary.embed_error}[/red]")

        table = Table(title="SUMMARY", show_header=False)
        table.add_column("")
        table.add_column("", justify="right")
        for label, value in summary_counts(summary).items():
            table.add_row(label, str(value))
        console.print(table)
