"""Command-line interface for localchat."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import click
from rich.console import Console
from rich.table import Table

from localchat.config import ChatConfig, load_config
from localchat.core.session import ChatSession, TurnResult
from localchat.llm.client import InferenceClient
from localchat.llm.endpoints import resolve_chat_url, server_root
from localchat.types import ChatMessage, Role

console = Console()


@click.group()
@click.option("--config", "-c", "config_path", default=None,
              help="Path to localchat.yaml (auto-detected from CWD or ~/.localchat/)")
@click.option("--url", default=None, help="Override the API URL")
@click.option("--model", "-m", default=None, help="Override the model name")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, url: str | None,
         model: str | None, verbose: bool):
    """localchat - stream answers from a local Ollama or OpenAI-compatible server."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)

    config, config_file = load_config(config_path)
    if url:
        config.api_url = url
    if model:
        config.model_name = model
    if verbose:
        console.print(f"[dim]Config: {config_file or 'defaults'}[/dim]")
    ctx.obj = config


@main.command()
@click.argument("prompt")
@click.option("--no-thinking", is_flag=True, help="Hide reasoning output")
@click.pass_obj
def chat(config: ChatConfig, prompt: str, no_thinking: bool):
    """Stream one answer to PROMPT."""
    if no_thinking:
        config.thinking_enabled = False
    if not config.model_name:
        console.print("[red]No model configured. Use --model or set model_name.[/red]")
        sys.exit(1)

    result = asyncio.run(_run_chat(config, prompt))
    console.print()
    if result.aborted:
        console.print("[yellow]Stopped.[/yellow]")
    elif result.error is not None:
        console.print(f"[red]{result.error.user_message}[/red]")
        console.print(f"[dim]{result.error.message}[/dim]")
        sys.exit(1)


async def _run_chat(config: ChatConfig, prompt: str) -> TurnResult:
    session = ChatSession(config)
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, session.stop)
    except (NotImplementedError, RuntimeError):
        pass  # Windows: Ctrl-C raises KeyboardInterrupt instead

    shown = {"content": 0, "thinking": 0}

    def _render(result: TurnResult) -> None:
        new_thinking = result.thinking[shown["thinking"]:]
        if new_thinking:
            console.print(new_thinking, style="dim italic", end="",
                          markup=False, highlight=False)
            shown["thinking"] = len(result.thinking)
        new_content = result.content[shown["content"]:]
        if new_content:
            if shown["content"] == 0 and shown["thinking"]:
                console.print()
            console.print(new_content, end="", markup=False, highlight=False)
            shown["content"] = len(result.content)

    try:
        return await session.send([ChatMessage(role=Role.USER, content=prompt)], _render)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass
        await session.close()


@main.command()
@click.pass_obj
def models(config: ChatConfig):
    """List the models the server offers."""

    async def _list():
        client = InferenceClient.from_config(config)
        try:
            return await client.list_models(config.api_url)
        finally:
            await client.close()

    result = asyncio.run(_list())
    if not result.success:
        console.print(f"[red]{result.error}[/red]")
        sys.exit(1)

    table = Table(title=f"Models at {server_root(config.api_url)}")
    table.add_column("Model", style="cyan")
    table.add_column("Active", justify="center")
    for name in result.models:
        table.add_row(name, "*" if name == config.model_name else "")
    console.print(table)


@main.command()
@click.pass_obj
def ping(config: ChatConfig):
    """Check that the chat endpoint answers."""

    async def _ping():
        client = InferenceClient.from_config(config)
        try:
            return await client.test_connection(config.api_url, config.model_name)
        finally:
            await client.close()

    url = resolve_chat_url(config.api_url)
    result = asyncio.run(_ping())
    if result.success:
        console.print(f"[green]online[/green]  {url}")
    else:
        console.print(f"[red]offline[/red]  {url}\n{result.error}")
        sys.exit(1)


if __name__ == "__main__":
    main()
