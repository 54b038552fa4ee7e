"""
Portal CLI — 服务与初始化命令
"""
from typing import Optional

import typer
from rich.table import Table

from .common import console, run


def register(app: typer.Typer):
    """注册服务相关子命令"""

    @app.command()
    def serve(
        host: Optional[str] = typer.Option(None, "--host", help="监听地址"),
        port: Optional[int] = typer.Option(None, "--port", "-p", help="监听端口"),
    ):
        """🚀 启动 HTTP 服务"""
        import uvicorn
        from ..config import settings

        uvicorn.run(
            "portal.main:app",
            host=host or settings.host,
            port=port or settings.port,
            reload=settings.debug,
        )

    @app.command()
    def seed():
        """🌱 写入内置基础模型与种子记忆"""
        from ..agents import seed_base_models
        from ..memory.seed import seed_core_memories

        async def _seed():
            return await seed_base_models(), await seed_core_memories()

        models_added, memories = run(_seed())
        console.print(f"[green]✅ 新增 {models_added} 个基础模型, 写入 {memories} 条种子记忆[/green]")

    @app.command()
    def models(
        all_models: bool = typer.Option(False, "--all", "-a", help="包含已停用的模型"),
    ):
        """📋 列出基础模型"""
        from ..agents import get_default_model, list_base_models

        async def _load():
            return await list_base_models(active_only=not all_models), await get_default_model()

        options, default = run(_load())
        if not options:
            console.print("[yellow]暂无基础模型，先运行 portal seed[/yellow]")
            return

        table = Table(title="基础模型")
        table.add_column("ID", justify="right")
        table.add_column("Model")
        table.add_column("Name")
        table.add_column("Provider")
        table.add_column("Context", justify="right")
        table.add_column("")

        for option in options:
            mark = "⭐" if default and default.id == option.id else ""
            if not option.is_active:
                mark += " [dim]停用[/dim]"
            table.add_row(
                str(option.id), option.model_id, option.name, option.provider,
                f"{option.context_length:,}", mark,
            )
        console.print(table)

    @app.command("use-model")
    def use_model(base_model_id: int = typer.Argument(..., help="基础模型 ID")):
        """⭐ 选择默认基础模型"""
        from ..agents import select_default_model
        from ..errors import NotFoundError

        try:
            option = run(select_default_model(base_model_id))
        except NotFoundError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(1)
        console.print(f"[green]✅ 默认模型: {option.name} ({option.model_id})[/green]")

    @app.command()
    def admin(
        user_id: str = typer.Argument(..., help="用户 ID"),
        revoke: bool = typer.Option(False, "--revoke", help="取消管理员"),
    ):
        """🔑 设置管理员"""
        from ..auth import ensure_user, set_admin

        async def _admin():
            await ensure_user(user_id)
            await set_admin(user_id, not revoke)

        run(_admin())
        console.print(f"[green]✅ {user_id} {'已取消' if revoke else '已设为'}管理员[/green]")
