"""
Portal CLI — 交互式对话
"""
import asyncio
from typing import Optional

import typer
from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.history import FileHistory
from prompt_toolkit.styles import Style
from rich.panel import Panel

from ..config import settings
from ..database import init_database
from ..errors import PortalError
from .common import console, history_path


# ── 斜杠命令补全器 ─────────────────────────────────────────

class PortalCompleter(Completer):
    """斜杠命令补全器"""

    SLASH_COMMANDS = {
        "/new": "开始新对话",
        "/title": "根据第一条消息自动命名",
        "/context": "查看当前记忆上下文",
        "/history": "查看本对话的消息",
        "/help": "显示帮助",
        "/exit": "退出聊天",
    }

    def get_completions(self, document, complete_event):
        text = document.text_before_cursor

        if text.startswith("/"):
            word = text.lower()
            for cmd, desc in self.SLASH_COMMANDS.items():
                if cmd.startswith(word):
                    yield Completion(
                        cmd,
                        start_position=-len(word),
                        display=cmd,
                        display_meta=desc,
                    )


def create_prompt_session() -> PromptSession:
    """创建带补全的 PromptSession"""
    style = Style.from_dict({
        'prompt': 'bold #00ff00',
        'completion-menu.completion': 'bg:#333333 #ffffff',
        'completion-menu.completion.current': 'bg:#00aa00 #ffffff',
    })

    return PromptSession(
        completer=PortalCompleter(),
        style=style,
        history=FileHistory(str(history_path())),
        complete_while_typing=False,
    )


def show_slash_help():
    lines = "\n".join(
        f"[cyan]{cmd}[/cyan]  {desc}" for cmd, desc in PortalCompleter.SLASH_COMMANDS.items()
    )
    console.print(Panel(lines, title="命令", border_style="dim"))


# ── 聊天循环 ──────────────────────────────────────────────

async def run_chat_loop(user_id: str, agent_id: int, conversation_id: Optional[int] = None):
    """对话循环：每轮保存用户消息 → 注入记忆 → 调用模型 → 保存回复"""
    from ..agents import get_agent
    from ..auth import ensure_user
    from ..chat import conversations, messages, relay
    from ..memory.context import compile_context

    await init_database()
    await ensure_user(user_id)
    agent = await get_agent(agent_id, user_id)

    if conversation_id is None:
        conversation_id = (await conversations.create_conversation(user_id, agent_id)).id
    else:
        await conversations.require_conversation(conversation_id, user_id)

    session = create_prompt_session()
    first_message: Optional[str] = None

    console.print(f"\n[bold cyan]{agent.name}[/bold cyan] [dim]· 对话 #{conversation_id}[/dim]")
    console.print("[dim]输入 / 后按 Tab 补全命令，/exit 退出[/dim]\n")

    while True:
        try:
            user_input = (await session.prompt_async("你> ")).strip()
        except (KeyboardInterrupt, EOFError):
            break

        if not user_input:
            continue

        if user_input.startswith("/"):
            cmd = user_input.split()[0].lower()
            if cmd in ("/exit", "/quit"):
                break
            if cmd == "/help":
                show_slash_help()
            elif cmd == "/new":
                conversation_id = (await conversations.create_conversation(user_id, agent_id)).id
                first_message = None
                console.print(f"[dim]新对话 #{conversation_id}[/dim]")
            elif cmd == "/title":
                if not first_message:
                    console.print("[yellow]还没有消息[/yellow]")
                    continue
                title = await relay.generate_title(
                    conversation_id, first_message, user_id, portal_key=settings.portal_key
                )
                console.print(f"[green]📝 {title}[/green]")
            elif cmd == "/context":
                recent = [
                    m.content for m in await messages.recent_messages(conversation_id, 6)
                    if m.role.value == "user"
                ]
                compiled = await compile_context(
                    user_id=user_id, conversation_id=conversation_id, recent_messages=recent
                )
                console.print(Panel(compiled.context or "(空)", title="Memory Context", border_style="cyan"))
            elif cmd == "/history":
                for m in await messages.list_messages(conversation_id):
                    console.print(f"[dim]{m.role.value}[/dim]: {m.content}")
            else:
                console.print(f"[yellow]未知命令: {cmd}[/yellow]")
            continue

        first_message = first_message or user_input
        try:
            with console.status("[cyan]思考中...[/cyan]"):
                result = await relay.send_message(
                    conversation_id, user_input, user_id, portal_key=settings.portal_key
                )
        except PortalError as e:
            console.print(f"[red]❌ {e}[/red]\n")
            continue

        marker = " 🧠" if result.memory_context_used else ""
        console.print(f"\n[bold cyan]{agent.name}[/bold cyan]{marker}: {result.content}")
        console.print(f"[dim]{result.tokens_used} tokens[/dim]\n")

    console.print("\n[dim]再见！[/dim] 👋")


def register(app: typer.Typer):
    """注册对话子命令"""

    @app.command()
    def chat(
        user_id: str = typer.Option(..., "--user", "-u", help="用户 ID"),
        agent_id: int = typer.Option(..., "--agent", "-a", help="Agent ID"),
        conversation_id: Optional[int] = typer.Option(None, "--conversation", "-c", help="继续已有对话"),
    ):
        """💬 进入对话模式"""
        try:
            asyncio.run(run_chat_loop(user_id, agent_id, conversation_id))
        except PortalError as e:
            console.print(f"[red]❌ {e}[/red]")
            raise typer.Exit(1)

    @app.command("new-agent")
    def new_agent(
        user_id: str = typer.Option(..., "--user", "-u", help="用户 ID"),
        name: str = typer.Option(..., "--name", "-n", help="Agent 名称"),
        prompt: str = typer.Option(..., "--prompt", "-p", help="System prompt"),
        base_model_id: Optional[int] = typer.Option(
            None, "--model", "-m", help="基础模型 ID（默认使用当前默认模型）"
        ),
    ):
        """🤖 创建 Agent"""
        from ..agents import create_agent, get_default_model
        from ..auth import ensure_user
        from ..errors import NotFoundError

        async def _create():
            await init_database()
            await ensure_user(user_id)
            model_id = base_model_id
            if model_id is None:
                default = await get_default_model()
                if default is None:
                    raise NotFoundError("没有默认模型，先运行 portal use-model <id>")
                model_id = default.id
            return await create_agent(user_id, model_id, name, prompt)

        try:
            agent = asyncio.run(_create())
        except PortalError as e:
            console.print(f"[red]❌ {e}[/red]")
            raise typer.Exit(1)
        console.print(f"[green]✅ Agent #{agent.id} {agent.name} 已创建[/green]")
