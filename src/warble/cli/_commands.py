"""``warble <command>`` implementations.

Each command is a coroutine taking the client and the parsed arguments.
Output goes to stdout; any ``WarbleError`` is printed to stderr and the
process exits with code 1.
"""

import argparse
import asyncio
import json
import sys
from collections.abc import Awaitable, Callable

from warble.client import AsyncClient
from warble.config import ClientConfig
from warble.errors import WarbleError
from warble.models import (
    ChatRequest,
    CopyModelRequest,
    DeleteModelRequest,
    EmbeddingsRequest,
    GenerateRequest,
    Message,
    ProgressResponse,
    PullModelRequest,
    PushModelRequest,
    ShowModelRequest,
)
from warble.streaming.sink import Cancelled, EventStream

type Command = Callable[[AsyncClient, argparse.Namespace], Awaitable[None]]


def make_client(args: argparse.Namespace) -> AsyncClient:
    """Build the client from ``--host``/``--timeout`` and the environment."""
    config = ClientConfig.from_env()
    if args.host:
        config = config.with_base_url(args.host)
    if args.timeout is not None:
        config = config.with_timeout(args.timeout)
    return AsyncClient(config=config)


async def _check_outcome(stream: EventStream) -> None:
    outcome = await stream.wait()
    if isinstance(outcome, Cancelled):
        msg = f"stream {outcome.reason} after {outcome.events} events"
        raise WarbleError(msg)


async def _generate(client: AsyncClient, args: argparse.Namespace) -> None:
    request = GenerateRequest(args.model, prompt=args.prompt, system=args.system)
    if args.no_stream:
        reply = await client.generate(request)
        print(reply.response)
        return

    async with client.generate_stream(request) as stream:
        async for part in stream:
            print(part.response, end="", flush=True)
        print()
        await _check_outcome(stream)


async def _chat(client: AsyncClient, args: argparse.Namespace) -> None:
    messages = [Message("user", args.message)]
    if args.system:
        messages.insert(0, Message("system", args.system))
    request = ChatRequest(args.model, messages=tuple(messages))

    async with client.chat_stream(request) as stream:
        async for part in stream:
            print(part.message.content, end="", flush=True)
        print()
        await _check_outcome(stream)


async def _embed(client: AsyncClient, args: argparse.Namespace) -> None:
    reply = await client.embeddings(EmbeddingsRequest(args.model, prompt=args.text))
    print(json.dumps(list(reply.embedding)))


async def _list(client: AsyncClient, args: argparse.Namespace) -> None:
    listing = await client.list_models()
    if not listing.models:
        print("No models.")
        return
    width = max(len(m.name) for m in listing.models)
    for model in listing.models:
        print(f"{model.name:<{width}}  {_human_size(model.size):>9}  {model.modified_at}")


async def _show(client: AsyncClient, args: argparse.Namespace) -> None:
    info = await client.show_model(ShowModelRequest(args.model))
    details = info.details
    for label, value in (
        ("family", details.family),
        ("parameters", details.parameter_size),
        ("quantization", details.quantization_level),
        ("format", details.format),
    ):
        if value:
            print(f"{label}: {value}")
    if info.modelfile:
        print()
        print(info.modelfile.rstrip())


async def _progress(stream: EventStream[ProgressResponse]) -> None:
    async with stream:
        async for update in stream:
            print(_progress_line(update), flush=True)
        await _check_outcome(stream)


async def _pull(client: AsyncClient, args: argparse.Namespace) -> None:
    await _progress(client.pull_model_stream(PullModelRequest(args.model, insecure=args.insecure)))


async def _push(client: AsyncClient, args: argparse.Namespace) -> None:
    await _progress(client.push_model_stream(PushModelRequest(args.model, insecure=args.insecure)))


async def _copy(client: AsyncClient, args: argparse.Namespace) -> None:
    await client.copy_model(CopyModelRequest(args.source, args.destination))
    print(f"copied {args.source} to {args.destination}")


async def _delete(client: AsyncClient, args: argparse.Namespace) -> None:
    await client.delete_model(DeleteModelRequest(args.model))
    print(f"deleted {args.model}")


_COMMANDS: dict[str, Command] = {
    "generate": _generate,
    "chat": _chat,
    "embed": _embed,
    "list": _list,
    "show": _show,
    "pull": _pull,
    "push": _push,
    "copy": _copy,
    "delete": _delete,
}


def _progress_line(update: ProgressResponse) -> str:
    line = update.status
    if update.digest:
        line += f" {update.digest[:19]}"
    fraction = update.fraction
    if fraction is not None:
        line += f" {_human_size(update.completed)}/{_human_size(update.total)} ({fraction:.0%})"
    return line


def _human_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1000:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1000
    return f"{value:.1f} TB"


async def _run(args: argparse.Namespace) -> None:
    async with make_client(args) as client:
        await _COMMANDS[args.command](client, args)


def run_command(args: argparse.Namespace) -> None:
    """Run one parsed command, exiting with code 1 on a warble error."""
    try:
        asyncio.run(_run(args))
    except WarbleError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
