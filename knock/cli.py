from __future__ import annotations

import argparse
import asyncio
import logging
import os
import subprocess
import sys
from pathlib import Path
from typing import Optional, Sequence

from dotenv import find_dotenv, load_dotenv
from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.styles import Style

from . import __version__
from .configure import run_setup
from .history import History
from .translate import (
    CacheStore,
    ConfigError,
    ProviderConfig,
    ProviderError,
    PromptValidationError,
    RequestMode,
    TranslationRecord,
    TranslationRequest,
    TranslationService,
    build_provider,
    get_default_config_path,
    load_config,
)
from .translate.storage import CacheError

STYLE = Style.from_dict(
    {
        "command": "ansibrightgreen",
        "detail": "#888888",
        "query": "#888888",
        "warning": "ansiyellow",
        "error": "ansired",
    }
)


def echo(fragments: Sequence[tuple[str, str]], file=None, end: str = "\n") -> None:
    print_formatted_text(FormattedText(list(fragments)), style=STYLE, file=file, end=end)


def select_mode(args: argparse.Namespace) -> RequestMode:
    if getattr(args, "alt", False):
        return RequestMode.ALT
    if getattr(args, "verbose", False):
        return RequestMode.VERBOSE
    return RequestMode.STANDARD


def build_config(args: argparse.Namespace) -> ProviderConfig:
    return load_config(
        config_path=args.config_file,
        overrides={"provider": args.provider, "model": args.model},
    )


async def run_translation(
    config: ProviderConfig,
    request: TranslationRequest,
    *,
    use_cache: bool = True,
    cache_path: Optional[Path] = None,
) -> TranslationRecord:
    provider = build_provider(config)
    cache = CacheStore(cache_path)
    service = TranslationService(provider, cache, temperature=config.temperature)
    try:
        return await service.translate(request, use_cache=use_cache)
    finally:
        await provider.aclose()
        cache.close()


def command_for_history(text: str, mode: RequestMode) -> str:
    """Verbose replies keep the command on the first line only."""
    if mode is RequestMode.VERBOSE:
        lines = text.splitlines()
        return lines[0] if lines else text
    return text


def render_result(text: str, mode: RequestMode) -> None:
    if mode is RequestMode.VERBOSE:
        lines = text.splitlines()
        if not lines:
            return
        echo([("class:command", lines[0])])
        detail = "\n".join(lines[1:]).strip()
        if detail:
            echo([("class:detail", detail)])
        return
    echo([("class:command", text)])


def confirm_and_execute(command: str) -> int:
    echo([("class:warning", "Execute? [y/N] ")], end="")
    try:
        answer = input()
    except EOFError:
        return 0
    if answer.strip().lower() not in {"y", "yes"}:
        return 0
    echo([("class:detail", "---")])
    shell = os.environ.get("SHELL") or "/bin/sh"
    try:
        completed = subprocess.run([shell, "-c", command])
    except OSError as exc:
        echo([("class:error", f"Failed to execute: {exc}")], file=sys.stderr)
        return 1
    if completed.returncode != 0:
        echo([("class:error", f"Command exited with code {completed.returncode}")], file=sys.stderr)
    return completed.returncode


def show_history(history: History, filter_text: str, limit: int) -> int:
    entries = history.search(filter_text) if filter_text else history.recent(limit)
    if not entries:
        echo([("class:detail", "No history found.")])
        return 0
    for entry in entries:
        echo([("class:query", entry.query)])
        echo([("", "  "), ("class:command", entry.command)])
    return 0


def add_common_options(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--provider",
        choices=["openai", "anthropic", "ollama"],
        help="Language model backend (default: from config, else openai)",
    )
    p.add_argument("--model", help="Model identifier for the selected provider")
    p.add_argument(
        "--config-file",
        type=Path,
        help="Path to a YAML config file (default: $KNOCK_CONFIG or ~/.knock/config.yaml)",
    )
    p.add_argument("--no-cache", action="store_true", help="Neither read nor write the response cache")
    p.add_argument("--debug", action="store_true", help="Log debug output to stderr")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="knock",
        description="Translate a natural-language request into a shell command.",
        epilog="Use `knock explain <command>` to explain an existing command.",
    )
    p.add_argument("query", nargs="*", help="What you want to do, in plain words")
    style = p.add_mutually_exclusive_group()
    style.add_argument("-v", "--verbose", action="store_true", help="Explain the command below it")
    style.add_argument("-a", "--alt", action="store_true", help="Show alternative commands")
    p.add_argument("-x", "--execute", action="store_true", help="Offer to run the command after printing it")
    p.add_argument(
        "--history",
        action="store_true",
        help="Show recent history; the query, if given, filters entries",
    )
    p.add_argument("--limit", type=int, default=20, help="History entries to show (default: 20)")
    p.add_argument("--clear-cache", action="store_true", help="Delete every cached response and exit")
    p.add_argument(
        "--config",
        action="store_true",
        help="Interactively choose provider, model, base URL and API key variable, then exit",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    add_common_options(p)
    return p


def build_explain_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="knock explain",
        description="Explain what a shell command does.",
    )
    add_common_options(p)
    p.add_argument(
        "command",
        nargs=argparse.REMAINDER,
        help="The command to explain, options included (quote it to keep pipes intact)",
    )
    return p


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def handle_explain(argv: Sequence[str]) -> int:
    parser = build_explain_parser()
    args = parser.parse_args(list(argv))
    configure_logging(args.debug)

    command = " ".join(args.command).strip()
    if not command:
        parser.error("Please provide a command to explain.")

    try:
        config = build_config(args)
        record = asyncio.run(
            run_translation(
                config,
                TranslationRequest(command, RequestMode.EXPLAIN),
                use_cache=not args.no_cache,
            )
        )
    except (ConfigError, PromptValidationError, ProviderError) as exc:
        parser.error(str(exc))
        return 2

    echo([("class:command", command)])
    print()
    print(record.text)
    return 0


def handle_setup(parser: argparse.ArgumentParser, path: Path, ask=None) -> int:
    try:
        data = run_setup(path, ask=ask)
    except ConfigError as exc:
        parser.error(str(exc))
        return 2
    except (EOFError, KeyboardInterrupt):
        echo([("class:warning", "Setup cancelled; config left unchanged.")], file=sys.stderr)
        return 1
    provider = data["provider"]
    echo([("class:detail", f"Saved {provider} settings to {path}")])
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    load_dotenv(find_dotenv(usecwd=True))

    if argv and argv[0] == "explain":
        return handle_explain(argv[1:])

    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.debug)
    query = " ".join(args.query).strip()
    if args.limit < 0:
        parser.error("--limit must not be negative")

    if args.config:
        return handle_setup(parser, args.config_file or get_default_config_path())

    if args.clear_cache:
        cache = CacheStore()
        try:
            cache.clear()
        except CacheError as exc:
            parser.error(f"Could not clear cache: {exc}")
            return 2
        finally:
            cache.close()
        print(f"Cleared response cache at {cache.path}")
        return 0

    if args.history:
        return show_history(History(), query, args.limit)

    if not query:
        parser.error("Please provide a query.")

    mode = select_mode(args)
    try:
        config = build_config(args)
        record = asyncio.run(
            run_translation(config, TranslationRequest(query, mode), use_cache=not args.no_cache)
        )
    except (ConfigError, PromptValidationError, ProviderError) as exc:
        parser.error(str(exc))
        return 2

    if mode is not RequestMode.ALT:
        try:
            History().add(query, command_for_history(record.text, mode))
        except OSError as exc:
            logging.getLogger(__name__).warning("Could not write history: %s", exc)

    render_result(record.text, mode)

    if args.execute and mode is not RequestMode.ALT:
        return confirm_and_execute(command_for_history(record.text, mode))
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
