"""
Agent Portal CLI 入口

模块划分:
  common.py       — console、协程运行、通用工具
  server_cmds.py  — 服务与初始化 (serve/seed/models/use-model/admin)
  memory_cmds.py  — 记忆系统 (recall/context/connected/semantic-search/embed-all/process-document)
  ingest_cmds.py  — 文档导入 (ingest)
  chat.py         — 交互式对话循环
"""
import typer

from .common import console, VERSION


# ── Typer App ─────────────────────────────────────────────

app = typer.Typer(
    name="portal",
    help="🌐 Agent Portal —— 带长期记忆的 Agent 对话门户",
    no_args_is_help=True,
)


# ── 注册子命令模块 ─────────────────────────────────────────

from . import chat, ingest_cmds, memory_cmds, server_cmds

server_cmds.register(app)
memory_cmds.register(app)
ingest_cmds.register(app)
chat.register(app)


@app.command()
def version():
    """显示版本"""
    console.print(f"Agent Portal v{VERSION}")


if __name__ == "__main__":
    app()
