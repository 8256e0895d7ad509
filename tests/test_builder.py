from __future__ import annotations

import asyncio
import io
from pathlib import Path

import pytest

from mdemit import builder
from mdemit.config import RenderConfig
from mdemit.digest import extract_digest, settings_fingerprint, source_digest
from mdemit.document import create_parser
from mdemit.errors import MdemitSourceError
from mdemit.progress import ProgressBar
from mdemit.renderer import Renderer

FP = settings_fingerprint(RenderConfig(), extensions=["table"], html=True)


def _make_parser():
    return create_parser(["table"])


def _write(p: Path, text: str) -> Path:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    return p


def _run(sources, output_dir: Path, stale: set[Path], **kw) -> builder.BuildReport:
    return asyncio.run(
        builder.run_build(
            sources=sources,
            output_dir=output_dir,
            renderer=Renderer(),
            make_parser=_make_parser,
            fingerprint=FP,
            stale=stale,
            **kw,
        )
    )


def test_discover_sources_walks_dirs_and_files(tmp_path: Path) -> None:
    _write(tmp_path / "docs" / "index.md", "# i\n")
    _write(tmp_path / "docs" / "guide" / "intro.markdown", "# g\n")
    _write(tmp_path / "docs" / "notes.txt", "x\n")
    _write(tmp_path / "docs" / ".drafts" / "wip.md", "# w\n")
    _write(tmp_path / "README.md", "# r\n")

    found = builder.discover_sources(tmp_path, ["docs", "README.md"])
    paths = [s.path for s in found]

    assert paths == sorted(paths)
    assert (tmp_path / "docs" / "index.md").resolve() in paths
    assert (tmp_path / "docs" / "guide" / "intro.markdown").resolve() in paths
    assert (tmp_path / "README.md").resolve() in paths
    assert all(".drafts" not in p.parts for p in paths)
    assert all(p.suffix != ".txt" for p in paths)

    readme = next(s for s in found if s.path.name == "README.md")
    assert readme.base == tmp_path.resolve()


def test_discover_sources_missing_entry(tmp_path: Path) -> None:
    with pytest.raises(MdemitSourceError, match="nope"):
        builder.discover_sources(tmp_path, ["nope"])


def test_output_path_mirrors_layout(tmp_path: Path) -> None:
    src = builder.SourceFile(path=tmp_path / "docs" / "a" / "b.md", base=tmp_path / "docs")
    out = builder.output_path_for(src, output_dir=tmp_path / "site")
    assert out == tmp_path / "site" / "a" / "b.html"


def test_write_page_atomic_and_scoped(tmp_path: Path) -> None:
    out_dir = tmp_path / "site"
    p = builder.write_page(output_dir=out_dir, out_path=out_dir / "x" / "y.html", content="hi")
    assert p.read_text(encoding="utf-8") == "hi"
    assert not [f for f in p.parent.iterdir() if f.name.startswith(".mdemit-tmp-")]

    with pytest.raises(ValueError):
        builder.write_page(output_dir=out_dir, out_path=tmp_path / "escape.html", content="x")


def test_build_renders_and_stamps(tmp_path: Path) -> None:
    _write(tmp_path / "docs" / "index.md", "# Hello\n")
    sources = builder.discover_sources(tmp_path, ["docs"])
    out_dir = tmp_path / "site"
    stale = builder.detect_stale(sources, output_dir=out_dir, fingerprint=FP)
    assert stale == {sources[0].path}

    report = _run(sources, out_dir, stale)
    assert report.rendered == {sources[0].path}
    assert report.failed == {}

    html = (out_dir / "index.html").read_text(encoding="utf-8")
    assert extract_digest(html) == source_digest("# Hello\n", FP)
    assert html.endswith('<h1 id="hello">Hello</h1>\n')


def test_second_build_skips_up_to_date(tmp_path: Path) -> None:
    page = _write(tmp_path / "docs" / "index.md", "# Hello\n")
    sources = builder.discover_sources(tmp_path, ["docs"])
    out_dir = tmp_path / "site"
    _run(sources, out_dir, builder.detect_stale(sources, output_dir=out_dir, fingerprint=FP))

    assert builder.detect_stale(sources, output_dir=out_dir, fingerprint=FP) == set()
    assert builder.detect_stale(sources, output_dir=out_dir, fingerprint=FP, force=True) == {
        sources[0].path
    }

    other = settings_fingerprint(RenderConfig(xhtml=True), extensions=["table"], html=True)
    assert builder.detect_stale(sources, output_dir=out_dir, fingerprint=other) == {
        sources[0].path
    }

    page.write_text("# Changed\n", encoding="utf-8")
    assert builder.detect_stale(sources, output_dir=out_dir, fingerprint=FP) == {sources[0].path}

    report = _run(sources, out_dir, set())
    assert report.skipped == {sources[0].path}
    assert report.rendered == set()


def test_build_reports_invalid_utf8(tmp_path: Path) -> None:
    good = _write(tmp_path / "docs" / "good.md", "ok\n")
    bad = tmp_path / "docs" / "bad.md"
    bad.write_bytes(b"\xff\xfe\xfa")
    sources = builder.discover_sources(tmp_path, ["docs"])

    report = _run(sources, tmp_path / "site", {s.path for s in sources}, jobs=1)

    assert report.rendered == {good.resolve()}
    assert list(report.failed) == [bad.resolve()]
    assert report.failed[bad.resolve()][0].startswith("Not valid UTF-8")
    assert not (tmp_path / "site" / "bad.html").exists()


def test_build_drives_progress(tmp_path: Path) -> None:
    for name in ("a", "b", "c"):
        _write(tmp_path / "docs" / f"{name}.md", f"# {name}\n")
    sources = builder.discover_sources(tmp_path, ["docs"])
    stream = io.StringIO()
    pb = ProgressBar(label="render", total=3, stream=stream, min_interval_s=0)

    report = _run(sources, tmp_path / "site", {s.path for s in sources}, jobs=2, progress=pb)

    assert len(report.rendered) == 3
    assert pb.rendered == 3
    assert "3/3" in stream.getvalue()
    assert stream.getvalue().endswith("\n")
