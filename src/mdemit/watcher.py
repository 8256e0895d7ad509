"""Watch mode for `mdemit watch`.

watchfiles reports raw filesystem batches. Only markdown files under a
configured source root count; writes into the output directory are ignored so
a rebuild never triggers itself. Each relevant batch re-runs `mdemit build`,
which re-renders just the pages whose digest stamp is stale.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mdemit.builder import MARKDOWN_SUFFIXES


@dataclass(frozen=True, slots=True)
class WatchEvent:
    """Markdown sources that changed in one debounced batch."""

    changed_paths: frozenset[Path]
    timestamp: float


@dataclass(frozen=True, slots=True)
class WatchCycleResult:
    """Outcome of one rebuild triggered by a `WatchEvent`."""

    exit_code: int
    duration_s: float
    changed_paths: frozenset[Path]

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def check_watchfiles_available() -> None:
    """Fail early, with the install command, when the watch extra is missing."""
    import importlib

    try:
        importlib.import_module("watchfiles")
    except ImportError:
        raise ImportError(
            "watchfiles is required for watch mode. Install it with: pip install mdemit[watch]"
        ) from None


def filter_markdown_files(
    changed_paths: frozenset[Path],
    *,
    source_roots: list[Path],
    output_dir: Path,
) -> frozenset[Path]:
    """Return the changed paths that are markdown sources.

    A source root may be a directory or a single file. Anything under
    `output_dir` is dropped even when it also sits under a source root.
    """
    kept: set[Path] = set()
    for p in changed_paths:
        if p.suffix.lower() not in MARKDOWN_SUFFIXES:
            continue
        if p.is_relative_to(output_dir):
            continue
        if any(p == r or p.is_relative_to(r) for r in source_roots):
            kept.add(p)
    return frozenset(kept)


async def run_watch_loop(
    *,
    changes_iter: AsyncIterator[set[tuple[Any, str]]],
    run_cycle: Callable[[WatchEvent], WatchCycleResult],
    on_event: Callable[[str], None],
    on_cycle_result: Callable[[WatchCycleResult], None],
    on_error: Callable[[BaseException], None],
    source_roots: list[Path],
    output_dir: Path,
) -> None:
    """Rebuild once per batch of changes that touches a markdown source.

    A cycle that raises is reported through `on_error` and the loop keeps
    watching.
    """
    async for raw_changes in changes_iter:
        paths = frozenset(Path(p) for _, p in raw_changes)
        relevant = filter_markdown_files(paths, source_roots=source_roots, output_dir=output_dir)
        if not relevant:
            continue

        event = WatchEvent(changed_paths=relevant, timestamp=time.monotonic())

        names = ", ".join(str(p) for p in sorted(relevant))
        on_event(f"[watch] change detected: {names}")
        on_event("[watch] rendering...")

        try:
            # Off the event loop: a cycle may start its own asyncio.run().
            result = await asyncio.to_thread(run_cycle, event)
        except Exception as exc:
            on_error(exc)
            continue

        on_event(f"[watch] done ({result.duration_s:.1f}s)")
        on_cycle_result(result)


def format_watch_cycle_json(result: WatchCycleResult) -> dict[str, object]:
    """One `--json` line per rebuild."""
    return {
        "command": "watch",
        "ok": result.ok,
        "exit_code": result.exit_code,
        "duration_s": round(result.duration_s, 2),
        "changed_paths": sorted(str(p) for p in result.changed_paths),
    }


def build_cycle_runner(args: Any) -> Callable[[WatchEvent], WatchCycleResult]:
    """Return a rebuild callback bound to the parsed `mdemit watch` arguments.

    The watch flags are a superset of the build flags, so the same namespace is
    handed to `cmd_build` unchanged.
    """
    from mdemit.cli import cmd_build

    def runner(event: WatchEvent) -> WatchCycleResult:
        t0 = time.monotonic()
        rc = cmd_build(args)
        return WatchCycleResult(
            exit_code=rc,
            duration_s=time.monotonic() - t0,
            changed_paths=event.changed_paths,
        )

    return runner


def make_watchfiles_iter(watch_paths: list[Path]) -> AsyncIterator[set[tuple[Any, str]]]:
    """Debounced change batches for the given roots."""
    import watchfiles

    return watchfiles.awatch(*watch_paths, debounce=200)
