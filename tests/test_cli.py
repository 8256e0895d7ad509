"""Tests for the `mdemit` command line."""

from __future__ import annotations

import io
import json
import sys
from pathlib import Path

import mdemit.cli
import mdemit.watcher


def _project(tmp_path: Path, *, extra: str = "") -> Path:
    (tmp_path / "mdemit.toml").write_text("version = 1\n" + extra, encoding="utf-8")
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "index.md").write_text("# Home\n\nHello.\n", encoding="utf-8")
    return tmp_path


def test_parse_render_defaults() -> None:
    ns = mdemit.cli.parse_args(["render", "page.md"])
    assert ns.command == "render"
    assert ns.file == "page.md"
    assert ns.output is None
    assert ns.json_output is False
    assert ns.xhtml is None
    assert ns.sanitize_links is None
    assert ns.highlight is None


def test_parse_render_overrides() -> None:
    ns = mdemit.cli.parse_args(
        ["render", "-", "--xhtml", "--no-header-auto-id", "--lang-prefix", "language-"]
    )
    assert ns.xhtml is True
    assert ns.header_auto_id is False
    assert ns.lang_prefix == "language-"


def test_parse_build_flags() -> None:
    ns = mdemit.cli.parse_args(
        ["build", "--root", "/tmp", "--jobs", "2", "--force", "--no-progress", "--json"]
    )
    assert ns.command == "build"
    assert ns.root == "/tmp"
    assert ns.jobs == 2
    assert ns.force is True
    assert ns.no_progress is True
    assert ns.json_output is True


def test_is_json_mode_helper() -> None:
    assert mdemit.cli._is_json_mode(mdemit.cli.parse_args(["build", "--json"])) is True
    assert mdemit.cli._is_json_mode(mdemit.cli.parse_args(["build"])) is False


def test_main_bad_args_returns_config_code(capsys) -> None:
    assert mdemit.cli.main(["frobnicate"]) == mdemit.cli.EXIT_CONFIG_OR_INPUT


def test_main_dispatches(monkeypatch) -> None:
    monkeypatch.setattr(mdemit.cli, "cmd_build", lambda args: 7)
    monkeypatch.setattr(mdemit.cli, "cmd_watch", lambda args: 8)
    assert mdemit.cli.main(["build"]) == 7
    assert mdemit.cli.main(["watch"]) == 8


def test_render_without_project_uses_defaults(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    page = tmp_path / "page.md"
    page.write_text("# Title\n\n---\n", encoding="utf-8")

    rc = mdemit.cli.main(["render", str(page)])
    out = capsys.readouterr().out
    assert rc == mdemit.cli.EXIT_OK
    assert out == '<h1 id="title">Title</h1>\n<hr>\n'


def test_render_overrides_apply(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    page = tmp_path / "page.md"
    page.write_text("# Title\n\n---\n", encoding="utf-8")

    rc = mdemit.cli.main(["render", str(page), "--xhtml", "--no-header-auto-id"])
    assert rc == 0
    assert capsys.readouterr().out == "<h1>Title</h1>\n<hr/>\n"


def test_render_uses_project_config(tmp_path: Path, monkeypatch, capsys) -> None:
    _project(tmp_path, extra='[render]\nheader_prefix = "p-"\n')
    monkeypatch.chdir(tmp_path)

    rc = mdemit.cli.main(["render", "docs/index.md"])
    assert rc == 0
    assert capsys.readouterr().out.startswith('<h1 id="p-home">Home</h1>\n')


def test_render_stdin_json(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(sys, "stdin", io.StringIO("*hi*\n"))

    rc = mdemit.cli.main(["render", "-", "--json"])
    payload = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert payload == {"command": "render", "ok": True, "html": "<p><em>hi</em></p>\n"}


def test_render_to_output_file(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)
    page = tmp_path / "page.md"
    page.write_text("hi\n", encoding="utf-8")
    out = tmp_path / "out" / "page.html"

    assert mdemit.cli.main(["render", str(page), "-o", str(out)]) == 0
    assert out.read_text(encoding="utf-8") == "<p>hi</p>\n"


def test_render_missing_file(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    rc = mdemit.cli.main(["render", str(tmp_path / "missing.md")])
    err = capsys.readouterr().err
    assert rc == mdemit.cli.EXIT_CONFIG_OR_INPUT
    assert err.startswith("error: No such markdown file")


def test_build_json_then_skip(tmp_path: Path, capsys) -> None:
    root = _project(tmp_path)

    rc = mdemit.cli.main(["build", "--root", str(root), "--json"])
    first = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert first["command"] == "build"
    assert first["ok"] is True
    assert len(first["rendered"]) == 1
    assert first["failed"] == {}

    html = (root / "site" / "index.html").read_text(encoding="utf-8")
    assert html.startswith("<!-- mdemit:digest=sha256:")
    assert '<h1 id="home">Home</h1>' in html

    rc = mdemit.cli.main(["build", "--root", str(root), "--json"])
    second = json.loads(capsys.readouterr().out)
    assert rc == 0
    assert second["rendered"] == []
    assert len(second["skipped"]) == 1

    rc = mdemit.cli.main(["build", "--root", str(root), "--json", "--force"])
    assert len(json.loads(capsys.readouterr().out)["rendered"]) == 1


def test_build_failure_exit_code(tmp_path: Path, capsys) -> None:
    root = _project(tmp_path)
    (root / "docs" / "bad.md").write_bytes(b"\xff\xfe")

    rc = mdemit.cli.main(["build", "--root", str(root)])
    err = capsys.readouterr().err
    assert rc == mdemit.cli.EXIT_RENDER_FAILURE
    assert "Render failed for 1 page(s):" in err
    assert "docs/bad.md" in err
    assert "error: 1 page(s) failed to render." in err
    assert (root / "site" / "index.html").exists()


def test_build_missing_source_dir(tmp_path: Path, capsys) -> None:
    (tmp_path / "mdemit.toml").write_text("version = 1\n", encoding="utf-8")
    rc = mdemit.cli.main(["build", "--root", str(tmp_path), "--json"])
    payload = json.loads(capsys.readouterr().out)
    assert rc == mdemit.cli.EXIT_CONFIG_OR_INPUT
    assert payload["ok"] is False
    assert "docs" in payload["error"]


def test_build_without_config(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.chdir(tmp_path)
    rc = mdemit.cli.main(["build"])
    err = capsys.readouterr().err
    assert rc == mdemit.cli.EXIT_CONFIG_OR_INPUT
    assert "hint:" in err


def test_watch_missing_watchfiles(tmp_path: Path, monkeypatch, capsys) -> None:
    _project(tmp_path)
    monkeypatch.chdir(tmp_path)

    def fake_check() -> None:
        raise ImportError("watchfiles is required for watch mode.")

    monkeypatch.setattr(mdemit.watcher, "check_watchfiles_available", fake_check)
    rc = mdemit.cli.main(["watch"])
    assert rc == mdemit.cli.EXIT_CONFIG_OR_INPUT
    assert "mdemit[watch]" in capsys.readouterr().err


def test_watch_rebuilds_on_change(tmp_path: Path, monkeypatch, capsys) -> None:
    root = _project(tmp_path)
    page = (root / "docs" / "index.md").resolve()

    async def one_change(paths):
        page.write_text("# Changed\n", encoding="utf-8")
        yield {(2, str(page))}

    monkeypatch.setattr(mdemit.watcher, "check_watchfiles_available", lambda: None)
    monkeypatch.setattr(mdemit.watcher, "make_watchfiles_iter", one_change)

    rc = mdemit.cli.main(["watch", "--root", str(root), "--json"])
    captured = capsys.readouterr()
    lines = [json.loads(line) for line in captured.out.splitlines() if line.strip()]

    assert rc == 0
    assert lines[-1]["command"] == "watch"
    assert lines[-1]["ok"] is True
    assert lines[-1]["changed_paths"] == [str(page)]
    assert "[watch] change detected:" in captured.err
    html = (root / "site" / "index.html").read_text(encoding="utf-8")
    assert '<h1 id="changed">Changed</h1>' in html
