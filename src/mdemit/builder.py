"""Batch rendering of markdown sources into an output directory."""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from markdown_it import MarkdownIt

from mdemit.digest import extract_digest, format_stamp, source_digest
from mdemit.document import DocumentRenderer
from mdemit.errors import MdemitSourceError
from mdemit.renderer import Renderer

logger = logging.getLogger("mdemit.builder")

MARKDOWN_SUFFIXES = (".md", ".markdown")


@dataclass(frozen=True, slots=True)
class SourceFile:
    path: Path
    # Directory the output layout is computed relative to.
    base: Path


@dataclass(frozen=True, slots=True)
class BuildReport:
    rendered: set[Path]
    skipped: set[Path]
    failed: dict[Path, list[str]]


def discover_sources(root: Path, sources: Sequence[str]) -> list[SourceFile]:
    """Expand configured source entries (files or directories) into markdown files."""

    found: dict[Path, SourceFile] = {}
    for entry in sources:
        p = (root / entry).resolve()
        if p.is_file():
            found.setdefault(p, SourceFile(path=p, base=p.parent))
            continue
        if not p.is_dir():
            raise MdemitSourceError(f"Source path does not exist: {entry}")
        for f in sorted(p.rglob("*")):
            if f.suffix.lower() not in MARKDOWN_SUFFIXES or not f.is_file():
                continue
            if any(part.startswith(".") for part in f.relative_to(p).parts):
                continue
            found.setdefault(f, SourceFile(path=f, base=p))
    return [found[k] for k in sorted(found)]


def output_path_for(source: SourceFile, *, output_dir: Path) -> Path:
    rel = source.path.relative_to(source.base).with_suffix(".html")
    return output_dir / rel


def write_page(*, output_dir: Path, out_path: Path, content: str) -> Path:
    """Atomically write a rendered page below `output_dir`."""

    out_path = out_path.resolve()
    root = output_dir.resolve()
    if root not in out_path.parents:
        raise ValueError("Refusing to write outside output_dir.")

    out_path.parent.mkdir(parents=True, exist_ok=True)

    # Write atomically: temp file in the same directory then os.replace.
    fd, tmp = tempfile.mkstemp(
        dir=str(out_path.parent),
        prefix=".mdemit-tmp-",
        suffix=".html",
        text=True,
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, out_path)
    finally:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
    return out_path


def detect_stale(
    sources: Sequence[SourceFile],
    *,
    output_dir: Path,
    fingerprint: dict[str, object],
    force: bool = False,
) -> set[Path]:
    if force:
        return {s.path for s in sources}

    stale: set[Path] = set()
    for src in sources:
        out_path = output_path_for(src, output_dir=output_dir)
        if not out_path.exists():
            stale.add(src.path)
            continue
        try:
            text = src.path.read_text(encoding="utf-8")
            existing = out_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            stale.add(src.path)
            continue
        if extract_digest(existing) != source_digest(text, fingerprint):
            stale.add(src.path)
    return stale


def build_page(
    src: SourceFile,
    *,
    output_dir: Path,
    renderer: Renderer,
    make_parser: Callable[[], MarkdownIt],
    fingerprint: dict[str, object],
) -> list[str]:
    """Render one source to disk; return error strings (empty on success)."""

    try:
        text = src.path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        return [f"Not valid UTF-8: {e.reason}"]
    except OSError as e:
        return [f"Failed reading source: {e.strerror or e}"]

    # One parser per page; the renderer itself is shared.
    body = DocumentRenderer(renderer, make_parser()).render(text)
    content = format_stamp(source_digest(text, fingerprint)) + body

    try:
        write_page(
            output_dir=output_dir,
            out_path=output_path_for(src, output_dir=output_dir),
            content=content,
        )
    except (OSError, ValueError) as e:
        return [f"Failed writing output: {e}"]
    return []


async def run_build(
    *,
    sources: Sequence[SourceFile],
    output_dir: Path,
    renderer: Renderer,
    make_parser: Callable[[], MarkdownIt],
    fingerprint: dict[str, object],
    stale: set[Path],
    jobs: int = 4,
    progress: object | None = None,
) -> BuildReport:
    jobs = max(1, int(jobs))

    pending = [s for s in sources if s.path in stale]
    skipped = {s.path for s in sources} - stale
    rendered: set[Path] = set()
    failed: dict[Path, list[str]] = {}

    def build_one(src: SourceFile) -> list[str]:
        return build_page(
            src,
            output_dir=output_dir,
            renderer=renderer,
            make_parser=make_parser,
            fingerprint=fingerprint,
        )

    in_flight: dict[asyncio.Task[list[str]], SourceFile] = {}

    while pending or in_flight:
        while pending and len(in_flight) < jobs:
            src = pending.pop(0)
            t: asyncio.Task[list[str]] = asyncio.create_task(asyncio.to_thread(build_one, src))
            in_flight[t] = src

        done, _ = await asyncio.wait(in_flight.keys(), return_when=asyncio.FIRST_COMPLETED)
        for t in done:
            src = in_flight.pop(t)
            try:
                errs = t.result()
            except Exception as e:  # noqa: BLE001 - report per page, keep building.
                errs = [f"Unhandled error: {e!r}"]

            if errs:
                failed[src.path] = errs
                logger.warning("failed %s: %s", src.path, "; ".join(errs))
            else:
                rendered.add(src.path)
                logger.info("rendered %s", src.path)

            if progress is not None:
                try:
                    progress.advance(src.path.name, ok=not errs)  # type: ignore[attr-defined]
                except Exception:
                    pass

    if progress is not None:
        try:
            progress.finish()  # type: ignore[attr-defined]
        except Exception:
            pass

    return BuildReport(rendered=rendered, skipped=skipped, failed=failed)
