from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from mdemit import __version__
from mdemit.errors import MdemitBuildError, MdemitConfigError, MdemitSourceError

if TYPE_CHECKING:  # pragma: no cover
    from mdemit.config import MdemitConfig


EXIT_OK = 0
EXIT_CONFIG_OR_INPUT = 2
EXIT_RENDER_FAILURE = 3

logger = logging.getLogger("mdemit.cli")


def _add_common_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--root",
        type=str,
        default=None,
        help="Project root (defaults to searching upward from cwd for mdemit.toml).",
    )
    p.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to mdemit.toml (defaults to <root>/mdemit.toml).",
    )
    p.add_argument(
        "--json",
        dest="json_output",
        action="store_true",
        help="Print a machine-readable JSON result on stdout.",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")


def _add_build_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument("--jobs", type=int, default=None, help="Concurrency override.")
    p.add_argument("--force", action="store_true", help="Re-render pages even if up to date.")
    p.add_argument("--no-progress", action="store_true", help="Disable the progress bar.")


def _add_render_overrides(p: argparse.ArgumentParser) -> None:
    p.add_argument("--xhtml", action=argparse.BooleanOptionalAction, default=None)
    p.add_argument("--sanitize-links", action=argparse.BooleanOptionalAction, default=None)
    p.add_argument("--header-auto-id", action=argparse.BooleanOptionalAction, default=None)
    p.add_argument("--smartypants", action=argparse.BooleanOptionalAction, default=None)
    p.add_argument("--lang-prefix", type=str, default=None)
    p.add_argument("--highlight", choices=["none", "pygments"], default=None)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mdemit")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    render_p = subparsers.add_parser("render", help="Render one markdown file to HTML.")
    render_p.add_argument("file", help="Markdown file to render, or '-' for stdin.")
    render_p.add_argument("-o", "--output", default=None, help="Write HTML here instead of stdout.")
    _add_common_flags(render_p)
    _add_render_overrides(render_p)

    build_p = subparsers.add_parser("build", help="Render all configured sources.")
    _add_common_flags(build_p)
    _add_build_flags(build_p)

    watch_p = subparsers.add_parser("watch", help="Re-render when sources change.")
    _add_common_flags(watch_p)
    _add_build_flags(watch_p)

    return parser


def parse_args(argv: list[str]) -> argparse.Namespace:
    return _build_parser().parse_args(argv)


def _is_json_mode(args: argparse.Namespace) -> bool:
    return bool(getattr(args, "json_output", False))


def _configure_logging(args: argparse.Namespace) -> None:
    level = logging.DEBUG if bool(getattr(args, "verbose", False)) else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _resolve_root_and_config(args: argparse.Namespace) -> tuple[Path | None, Path | None]:
    root = Path(args.root).resolve() if args.root else None
    config_path = Path(args.config).resolve() if args.config else None
    return root, config_path


def _load_config(args: argparse.Namespace) -> tuple[Path, MdemitConfig]:
    from mdemit.config import find_project_root, load_config

    root, config_path = _resolve_root_and_config(args)
    if root is None and config_path is None:
        root = find_project_root(Path.cwd())
    elif root is None and config_path is not None:
        root = config_path.parent

    assert root is not None
    cfg = load_config(root=root, config_path=config_path)
    return root, cfg


def _load_config_or_defaults(args: argparse.Namespace) -> MdemitConfig:
    """Like `_load_config`, but a missing project config means built-in defaults."""
    from mdemit.config import (
        BuildConfig,
        EXTENSIONS,
        MarkdownConfig,
        MdemitConfig,
        PathsConfig,
        RenderConfig,
        find_project_root,
    )

    if args.root is None and args.config is None:
        try:
            find_project_root(Path.cwd())
        except MdemitConfigError:
            return MdemitConfig(
                version=1,
                paths=PathsConfig(sources=["docs"], output_dir="site"),
                render=RenderConfig(),
                markdown=MarkdownConfig(extensions=list(EXTENSIONS), html=True),
                build=BuildConfig(jobs=4),
            )
    return _load_config(args)[1]


def _apply_render_overrides(cfg: MdemitConfig, args: argparse.Namespace) -> MdemitConfig:
    from mdemit.highlight import resolve_highlighter

    changes: dict[str, object] = {}
    for name in ("xhtml", "sanitize_links", "header_auto_id", "smartypants", "lang_prefix"):
        value = getattr(args, name, None)
        if value is not None:
            changes[name] = value
    if getattr(args, "highlight", None) is not None:
        changes["highlight"] = resolve_highlighter(args.highlight)
    if not changes:
        return cfg
    return dataclasses.replace(cfg, render=dataclasses.replace(cfg.render, **changes))


def _eprint(msg: str) -> None:
    print(msg, file=sys.stderr)


def _print_error(e: BaseException) -> None:
    from mdemit.diagnostics import format_error_with_hint

    _eprint(format_error_with_hint(e))


def _emit_json(payload: dict[str, object]) -> None:
    print(json.dumps(payload, sort_keys=True))


def _fail(args: argparse.Namespace, e: BaseException, code: int) -> int:
    if _is_json_mode(args):
        _emit_json({"command": args.command, "ok": False, "error": (str(e) or repr(e)).strip()})
    else:
        _print_error(e)
    return code


def cmd_render(args: argparse.Namespace) -> int:
    _configure_logging(args)
    try:
        cfg = _apply_render_overrides(_load_config_or_defaults(args), args)

        if args.file == "-":
            text = sys.stdin.read()
        else:
            src = Path(args.file)
            try:
                text = src.read_text(encoding="utf-8")
            except FileNotFoundError as e:
                raise MdemitSourceError(f"No such markdown file: {src}") from e
            except (OSError, UnicodeDecodeError) as e:
                raise MdemitSourceError(f"Failed reading {src}: {e}") from e

        from mdemit.document import render_markdown

        html = render_markdown(
            text,
            cfg.render,
            extensions=cfg.markdown.extensions,
            html=cfg.markdown.html,
        )

        if args.output:
            out = Path(args.output)
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_text(html, encoding="utf-8")
            if _is_json_mode(args):
                _emit_json({"command": "render", "ok": True, "output": str(out)})
        elif _is_json_mode(args):
            _emit_json({"command": "render", "ok": True, "html": html})
        else:
            sys.stdout.write(html)
        return EXIT_OK
    except (MdemitConfigError, MdemitSourceError) as e:
        return _fail(args, e, EXIT_CONFIG_OR_INPUT)
    except OSError as e:
        return _fail(args, e, EXIT_RENDER_FAILURE)


def cmd_build(args: argparse.Namespace) -> int:
    _configure_logging(args)
    try:
        root, cfg = _load_config(args)

        from mdemit import builder
        from mdemit.digest import settings_fingerprint
        from mdemit.document import create_parser
        from mdemit.progress import ProgressBar
        from mdemit.renderer import Renderer

        sources = builder.discover_sources(root, cfg.paths.sources)
        output_dir = (root / cfg.paths.output_dir).resolve()
        fingerprint = settings_fingerprint(
            cfg.render, extensions=cfg.markdown.extensions, html=cfg.markdown.html
        )
        stale = builder.detect_stale(
            sources, output_dir=output_dir, fingerprint=fingerprint, force=bool(args.force)
        )

        progress = None
        if stale and (not bool(args.no_progress)) and sys.stderr.isatty():
            progress = ProgressBar(label="render", total=len(stale), stream=sys.stderr)

        def make_parser():
            return create_parser(
                cfg.markdown.extensions,
                html=cfg.markdown.html,
                typographer=cfg.render.smartypants,
            )

        jobs = int(args.jobs) if args.jobs is not None else int(cfg.build.jobs)
        report = asyncio.run(
            builder.run_build(
                sources=sources,
                output_dir=output_dir,
                renderer=Renderer(cfg.render),
                make_parser=make_parser,
                fingerprint=fingerprint,
                stale=stale,
                jobs=jobs,
                progress=progress,
            )
        )

        if _is_json_mode(args):
            _emit_json(
                {
                    "command": "build",
                    "ok": not report.failed,
                    "rendered": sorted(str(p) for p in report.rendered),
                    "skipped": sorted(str(p) for p in report.skipped),
                    "failed": {str(p): errs for p, errs in sorted(report.failed.items())},
                }
            )
        if report.failed:
            if not _is_json_mode(args):
                from mdemit.diagnostics import format_render_failures

                _eprint(format_render_failures(report.failed, root=root).rstrip())
                _print_error(MdemitBuildError(f"{len(report.failed)} page(s) failed to render."))
            return EXIT_RENDER_FAILURE
        return EXIT_OK
    except (MdemitConfigError, MdemitSourceError) as e:
        return _fail(args, e, EXIT_CONFIG_OR_INPUT)


def cmd_watch(args: argparse.Namespace) -> int:
    _configure_logging(args)
    from mdemit import watcher

    try:
        watcher.check_watchfiles_available()
    except ImportError as e:
        return _fail(args, e, EXIT_CONFIG_OR_INPUT)

    try:
        root, cfg = _load_config(args)
    except MdemitConfigError as e:
        return _fail(args, e, EXIT_CONFIG_OR_INPUT)

    source_roots = [(root / s).resolve() for s in cfg.paths.sources]
    output_dir = (root / cfg.paths.output_dir).resolve()

    rc = cmd_build(args)
    if rc == EXIT_CONFIG_OR_INPUT:
        return rc

    def on_cycle_result(result: watcher.WatchCycleResult) -> None:
        if _is_json_mode(args):
            _emit_json(watcher.format_watch_cycle_json(result))

    try:
        asyncio.run(
            watcher.run_watch_loop(
                changes_iter=watcher.make_watchfiles_iter([p for p in source_roots if p.exists()]),
                run_cycle=watcher.build_cycle_runner(args),
                on_event=_eprint,
                on_cycle_result=on_cycle_result,
                on_error=_print_error,
                source_roots=source_roots,
                output_dir=output_dir,
            )
        )
    except KeyboardInterrupt:
        pass
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    try:
        args = parse_args(list(sys.argv[1:] if argv is None else argv))
    except SystemExit as e:
        # argparse uses SystemExit for --help/--version and parse errors.
        code = e.code
        return int(code) if isinstance(code, int) else EXIT_CONFIG_OR_INPUT

    if args.command == "render":
        return cmd_render(args)
    if args.command == "build":
        return cmd_build(args)
    if args.command == "watch":
        return cmd_watch(args)

    return EXIT_CONFIG_OR_INPUT


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
