from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from typing import Any, Dict, List, Optional

from config import get_settings
from core.enhancer import PromptEnhancer
from core.providers import ENHANCEMENT_MODES, ProviderRegistry, create_default_registry
from exceptions import ProviderError, ProviderNotFoundError
from monitoring import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prompt-enhance",
        description="Rewrite a prompt into a clearer, more structured one.",
    )
    parser.add_argument("prompt", nargs="*", help="prompt to enhance (read from stdin if omitted)")
    parser.add_argument("-m", "--mode", default="balanced", choices=ENHANCEMENT_MODES)
    parser.add_argument("-p", "--provider", help="use this provider only")
    parser.add_argument("--model", help="model to request from the provider")
    parser.add_argument("--model-tier", help="Hugging Face tier: fast, balanced or deep")
    parser.add_argument("--no-ai", action="store_true", help="use the static templates only")
    parser.add_argument("--no-cache", action="store_true", help="bypass the response cache")
    parser.add_argument("--no-pull", action="store_true", help="never download missing models")
    parser.add_argument("--list", action="store_true", help="list registered providers")
    parser.add_argument("--check-health", action="store_true", help="probe every provider")
    parser.add_argument("--compare", action="store_true", help="run the prompt through every provider")
    parser.add_argument("--stats", action="store_true", help="show usage statistics")
    parser.add_argument("--clear-cache", action="store_true", help="delete cached responses")
    parser.add_argument("--pull", metavar="MODEL", help="download an Ollama model")
    parser.add_argument("-v", "--verbose", action="store_true", help="log at debug level")
    return parser


def _read_prompt(args: argparse.Namespace) -> str:
    if args.prompt:
        return " ".join(args.prompt)
    if not sys.stdin.isatty():
        return sys.stdin.read().strip()
    return ""


def _options(args: argparse.Namespace) -> Dict[str, Any]:
    options: Dict[str, Any] = {}
    if args.model:
        options["model"] = args.model
    if args.model_tier:
        options["model_tier"] = args.model_tier
    if args.no_cache:
        options["use_cache"] = False
    if args.no_pull:
        options["auto_pull"] = False
    return options


def _print_progress(record: Dict[str, Any]) -> None:
    total = record.get("total")
    completed = record.get("completed")
    status = record.get("status", "")
    if total and completed:
        print(f"\r{status}: {completed * 100 // total}%", end="", file=sys.stderr)
    elif status:
        print(f"\n{status}", end="", file=sys.stderr)


async def _list(registry: ProviderRegistry) -> int:
    if not len(registry):
        print("No providers registered.")
        return 1
    for info in registry.list_providers():
        marker = " (default)" if info["default"] else ""
        print(f"{info['name']}{marker}: {info['type']}")
    return 0


async def _check_health(registry: ProviderRegistry) -> int:
    health = await registry.check_health()
    for name, status in health.items():
        icon = "✅" if status.healthy else "❌"
        marker = " (default)" if status.default else ""
        print(f"{icon} {name}{marker}: {status.detail}")
    return 0 if any(s.healthy for s in health.values()) else 1


async def _compare(registry: ProviderRegistry, prompt: str, options: Dict[str, Any]) -> int:
    results = await registry.compare_providers(prompt, **options)
    for name, result in results.items():
        print(f"\n=== {name} ({result.elapsed:.2f}s) ===")
        if result.success:
            print(result.response)
            print(f"~{result.estimated_tokens} tokens")
        else:
            print(f"Error: {result.error}")
    return 0 if any(r.success for r in results.values()) else 1


async def _clear_cache(registry: ProviderRegistry) -> int:
    cleared = 0
    for name in registry.names:
        clear = getattr(registry.get_provider(name), "clear_cache", None)
        if clear is not None:
            count = await clear()
            cleared += count
            print(f"{name}: cleared {count} cached responses")
    if not cleared:
        print("Cache is empty.")
    return 0


async def _pull(registry: ProviderRegistry, model: str) -> int:
    provider = registry.get_provider("ollama")
    await provider.pull_model(model, on_progress=_print_progress)
    print(f"\nPulled {model}", file=sys.stderr)
    return 0


async def main(argv: Optional[List[str]] = None) -> int:
    """Run a single prompt-enhancer command and return the exit status."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging("DEBUG" if args.verbose else settings.log_level, settings.log_format)

    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, task.cancel)
        except (NotImplementedError, RuntimeError):
            pass

    registry = create_default_registry(settings)
    try:
        if args.list:
            return await _list(registry)
        if args.check_health:
            return await _check_health(registry)
        if args.stats:
            print(json.dumps(registry.get_usage_stats(), indent=2, default=str))
            return 0
        if args.clear_cache:
            return await _clear_cache(registry)
        if args.pull:
            return await _pull(registry, args.pull)

        prompt = _read_prompt(args)
        if not prompt:
            build_parser().print_usage(sys.stderr)
            return 2
        options = _options(args)

        if args.compare:
            return await _compare(registry, prompt, options)

        enhancer = PromptEnhancer(registry, max_prompt_length=settings.max_prompt_length)
        result = await enhancer.enhance(
            prompt, args.mode, provider=args.provider, use_ai=not args.no_ai, **options
        )
        for error in result.errors:
            print(f"⚠️  {error}", file=sys.stderr)
        if result.used_fallback and not args.no_ai:
            print("Using template enhancement.", file=sys.stderr)
        print(result.text)
        return 0
    except (ProviderError, ProviderNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except asyncio.CancelledError:
        print("\nInterrupted.", file=sys.stderr)
        return 130
    finally:
        await registry.shutdown()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
