"""Warble CLI — talk to an Ollama server from the shell.

Entry point registered as ``warble`` in ``pyproject.toml``::

    [project.scripts]
    warble = "warble.cli:main"
"""

import argparse
import logging
import sys


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="warble",
        description="Warble — async client for the Ollama HTTP API.",
    )
    parser.add_argument(
        "--host",
        default=None,
        help="Server address (default: $OLLAMA_HOST or 127.0.0.1:11434)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="HTTP timeout in seconds",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log requests to stderr")
    subparsers = parser.add_subparsers(dest="command")

    # -- warble generate --------------------------------------------------
    generate_parser = subparsers.add_parser("generate", help="Generate a completion")
    generate_parser.add_argument("model", help="Model name")
    generate_parser.add_argument("prompt", help="Prompt text")
    generate_parser.add_argument("--system", default="", help="System prompt")
    generate_parser.add_argument(
        "--no-stream",
        action="store_true",
        help="Wait for the whole response instead of streaming it",
    )

    # -- warble chat ------------------------------------------------------
    chat_parser = subparsers.add_parser("chat", help="Send one chat message")
    chat_parser.add_argument("model", help="Model name")
    chat_parser.add_argument("message", help="User message")
    chat_parser.add_argument("--system", default="", help="System message")

    # -- warble embed -----------------------------------------------------
    embed_parser = subparsers.add_parser("embed", help="Print the embedding of a text")
    embed_parser.add_argument("model", help="Model name")
    embed_parser.add_argument("text", help="Text to embed")

    # -- model management -------------------------------------------------
    subparsers.add_parser("list", help="List local models")

    show_parser = subparsers.add_parser("show", help="Show model details")
    show_parser.add_argument("model", help="Model name")

    pull_parser = subparsers.add_parser("pull", help="Download a model")
    pull_parser.add_argument("model", help="Model name")
    pull_parser.add_argument("--insecure", action="store_true", help="Allow insecure registries")

    push_parser = subparsers.add_parser("push", help="Upload a model")
    push_parser.add_argument("model", help="Model name")
    push_parser.add_argument("--insecure", action="store_true", help="Allow insecure registries")

    copy_parser = subparsers.add_parser("copy", help="Copy a model")
    copy_parser.add_argument("source", help="Existing model name")
    copy_parser.add_argument("destination", help="New model name")

    delete_parser = subparsers.add_parser("delete", help="Delete a model")
    delete_parser.add_argument("model", help="Model name")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point for the ``warble`` command."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    from warble.cli._commands import run_command

    run_command(args)
