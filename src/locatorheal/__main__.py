from __future__ import annotations

import argparse
import json
import logging
import shlex
import subprocess
import sys
from contextlib import contextmanager
from dataclasses import asdict
from pathlib import Path
from typing import Any, Iterator, Sequence

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from .completion import CallableCompletionService, CompletionService
from .exceptions import LocatorHealError
from .history import HealingHistory
from .html_snapshot import HtmlSnapshotPage
from .locator_generator import generate_locators
from .logging_setup import build_logger
from .models import HealedAction, RecordedAction, normalize_query_kind
from .playwright_query import PlaywrightPageQuery, is_missing_browser_error
from .self_healing import SelfHealingResolver
from .settings import HealingSettings, load_settings, save_settings
from .stores import SqliteKeyValueStore

logger = logging.getLogger("locatorheal.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="locatorheal", description="Generate and self-heal UI test locators.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--config", type=Path, default=None, help="Settings JSON (default ~/.locatorheal/config.json)")
    sub = parser.add_subparsers(dest="command", required=True)

    generate = sub.add_parser("generate", help="Rank locator candidates for one element")
    _add_page_arguments(generate)
    generate.add_argument("--target", required=True, help="Selector of the element to describe")
    generate.add_argument("--kind", default="CSS", choices=["CSS", "XPath", "Text"], help="Query kind of --target")

    heal = sub.add_parser("heal", help="Heal the selectors of recorded actions")
    _add_page_arguments(heal)
    heal.add_argument("--actions", required=True, type=Path, help="JSON list of recorded actions")
    heal.add_argument("--store", type=Path, default=None, help="History folder (default ~/.locatorheal)")
    heal.add_argument("--out", type=Path, default=None, help="Write emitted actions here instead of stdout")
    heal.add_argument("--workers", type=int, default=4, help="Concurrent healers for static pages")
    heal.add_argument(
        "--completion-command",
        default=None,
        help="Command that reads a prompt on stdin and prints a selector",
    )

    stats = sub.add_parser("stats", help="Show healing history statistics")
    stats.add_argument("--store", type=Path, default=None)

    reset = sub.add_parser("reset", help="Clear healing history")
    reset.add_argument("--store", type=Path, default=None)

    config = sub.add_parser("config", help="Show the effective healing settings")
    config.add_argument("--write", action="store_true", help="Save them to the --config path")
    return parser


def _add_page_arguments(parser: argparse.ArgumentParser) -> None:
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--html", type=Path, help="Static HTML snapshot of the page")
    source.add_argument("--url", help="Live page opened in headless Chromium")


@contextmanager
def open_page(html_path: Path | None, url: str | None) -> Iterator[HtmlSnapshotPage | PlaywrightPageQuery]:
    if html_path is not None:
        yield HtmlSnapshotPage.from_file(html_path)
        return

    with sync_playwright() as playwright:
        try:
            browser = playwright.chromium.launch(headless=True)
        except PlaywrightError as exc:
            if is_missing_browser_error(exc):
                raise SystemExit("Chromium not installed. Run: python -m playwright install chromium") from exc
            raise
        try:
            page = browser.new_page()
            page.goto(url or "about:blank", wait_until="domcontentloaded")
            yield PlaywrightPageQuery(page)
        finally:
            browser.close()


def load_actions(path: Path) -> list[RecordedAction]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = payload.get("actions", [])
    if not isinstance(payload, list):
        raise ValueError(f"{path} does not hold a list of actions")
    return [RecordedAction.from_dict(item) for item in payload if isinstance(item, dict)]


def command_completion(command: str | None) -> CompletionService | None:
    if not command:
        return None
    argv = shlex.split(command)

    def _complete(prompt: str) -> str:
        completed = subprocess.run(argv, input=prompt, capture_output=True, text=True, check=True)
        return completed.stdout

    return CallableCompletionService(_complete)


def _history(store_dir: Path | None, settings: HealingSettings) -> HealingHistory:
    return HealingHistory(
        SqliteKeyValueStore(store_dir),
        limit=settings.history_limit,
        min_records_for_ranking=settings.min_history_for_ranking,
    )


def run_generate(args: argparse.Namespace, settings: HealingSettings) -> int:
    with open_page(args.html, args.url) as page:
        descriptor = page.describe(args.target, normalize_query_kind(args.kind))
        result = generate_locators(descriptor, page, max_alternatives=settings.max_alternatives)
    print(json.dumps(result.to_dict(), indent=2))
    return 0


def run_heal(args: argparse.Namespace, settings: HealingSettings) -> int:
    actions = load_actions(args.actions)
    resolver = SelfHealingResolver(
        _history(args.store, settings),
        completion=command_completion(args.completion_command),
        settings=settings,
    )
    # The playwright sync API is bound to the thread that started it.
    workers = 1 if args.url else args.workers

    with open_page(args.html, args.url) as page:
        results = resolver.heal_many(actions, page, max_workers=workers)

    emitted: list[dict[str, Any]] = []
    failures = 0
    for action, result in zip(actions, results):
        if isinstance(result, HealedAction):
            emitted.append(result.action.to_emitted())
            continue
        failures += 1
        emitted.append(action.to_emitted())
        print(
            f"Could not heal {result.original_selector!r}; attempted: {', '.join(result.attempted) or 'none'}",
            file=sys.stderr,
        )

    text = json.dumps(emitted, indent=2)
    if args.out:
        args.out.write_text(text + "\n", encoding="utf-8")
    else:
        print(text)
    return 1 if failures else 0


def run_stats(args: argparse.Namespace, settings: HealingSettings) -> int:
    history = _history(args.store, settings)
    stats = history.stats()
    payload = {
        "total": stats.total,
        "perStrategy": dict(stats.per_strategy),
        "averageConfidence": stats.average_confidence,
        "ranking": history.ranking(),
    }
    print(json.dumps(payload, indent=2))
    return 0


def run_reset(args: argparse.Namespace, settings: HealingSettings) -> int:
    _history(args.store, settings).clear()
    print("Healing history cleared.")
    return 0


def run_config(args: argparse.Namespace, settings: HealingSettings) -> int:
    if args.write:
        ok, error = save_settings(settings, args.config)
        if not ok:
            print(f"Error: {error}", file=sys.stderr)
            return 2
    print(json.dumps(asdict(settings), indent=2, sort_keys=True))
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    if sys.version_info < (3, 11):
        raise SystemExit(
            "locatorheal requires Python 3.11+. "
            f"Current interpreter: {sys.executable} (Python {sys.version.split()[0]})"
        )
    args = build_parser().parse_args(argv)
    build_logger(verbose=args.verbose)
    settings = load_settings(args.config)

    commands = {
        "generate": run_generate,
        "heal": run_heal,
        "stats": run_stats,
        "reset": run_reset,
        "config": run_config,
    }
    try:
        return commands[args.command](args, settings)
    except (LocatorHealError, LookupError, OSError, ValueError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        print(f"Error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
