"""Tests for the HTML minification stage."""

import logging
from pathlib import Path

import pytest

from site_optimizer.config import OptimizeConfig
from site_optimizer.minify import log_summary, minify_document, minify_tree
from site_optimizer.models import FileOutcome, StageReport

SAMPLE_HTML = """<!DOCTYPE html>
<html lang="en">
  <head>
    <title>Sample</title>
    <style>
      .a  {  color : red ;  }
    </style>
  </head>
  <body>
    <!-- navigation -->
    <p class="a">Hello     <b>world</b></p>
  </body>
</html>
"""


class TestMinifyDocument:
    """Tests for single-document compression."""

    def test_strips_comments_and_whitespace(self) -> None:
        """Test that comments and indentation are removed."""
        minified = minify_document(SAMPLE_HTML)

        assert "<!--" not in minified
        assert "navigation" not in minified
        assert "\n" not in minified
        assert "Hello" in minified and "world" in minified
        assert len(minified) < len(SAMPLE_HTML)

    def test_minifies_embedded_css(self) -> None:
        """Test that style blocks are compressed too."""
        minified = minify_document(SAMPLE_HTML)

        assert ".a{color:red}" in minified

    def test_drops_empty_attributes_and_keeps_urls(self) -> None:
        """Test that empty attributes go while link targets are preserved verbatim."""
        html = (
            '<p class="" id="intro">Read <a href="https://example.com/docs/../guide.html?x=1">the guide</a>'
            ' or <a href="/about/">about</a></p>'
        )

        minified = minify_document(html)

        assert "class" not in minified
        assert "intro" in minified
        assert "https://example.com/docs/../guide.html?x=1" in minified
        assert "/about/" in minified

    def test_second_pass_is_idempotent(self) -> None:
        """Test that minifying minified output changes nothing."""
        once = minify_document(SAMPLE_HTML)
        twice = minify_document(once)

        assert twice == once
        assert len(twice.encode("utf-8")) == len(once.encode("utf-8"))


class TestMinifyTree:
    """Tests for the whole-tree stage."""

    def test_minifies_every_page(self, config: OptimizeConfig, site_dir: Path) -> None:
        """Test that nested pages are rewritten and sizes recorded."""
        nested = site_dir / "blog" / "post"
        nested.mkdir(parents=True)
        (nested / "index.html").write_text(SAMPLE_HTML, encoding="utf-8")

        report = minify_tree(config)

        assert len(report.succeeded) == 2
        assert report.total_final_bytes < report.total_original_bytes
        assert 0 < report.total_reduction_percent < 100
        assert "<!--" not in (nested / "index.html").read_text(encoding="utf-8")

    def test_failed_file_is_excluded_from_summary(self, config: OptimizeConfig, site_dir: Path) -> None:
        """Test that an unreadable page is skipped and counted as failed."""
        (site_dir / "broken.html").write_bytes(b"\xff\xfe\x80")

        report = minify_tree(config)

        assert [outcome.path.name for outcome in report.failed] == ["broken.html"]
        assert report.total_original_bytes == report.succeeded[0].original_bytes

    def test_second_run_keeps_sizes(self, config: OptimizeConfig, site_dir: Path) -> None:
        """Test that a second run over the tree reduces nothing further."""
        first = minify_tree(config)
        second = minify_tree(config)

        assert second.total_final_bytes == first.total_final_bytes
        assert second.total_reduction_percent == 0

    def test_missing_output_directory_is_fatal(self, tmp_path: Path) -> None:
        """Test that a missing root raises."""
        with pytest.raises(FileNotFoundError):
            minify_tree(OptimizeConfig(output_root=tmp_path / "missing"))


class TestLogSummary:
    """Tests for the aggregate size summary."""

    def test_reports_totals(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test that totals and averages are logged."""
        report = StageReport(stage="minify-html")
        report.record(FileOutcome.success(Path("a.html"), 1000, 500))
        report.record(FileOutcome.success(Path("b.html"), 3000, 2700))

        with caplog.at_level(logging.INFO, logger="site_optimizer.minify"):
            log_summary(report)

        assert "Total original size: 4000 bytes" in caplog.text
        assert "Total minified size: 3200 bytes" in caplog.text
        assert "Total reduction: 20.00%" in caplog.text
        assert "Average reduction: 30.00%" in caplog.text

    def test_nothing_succeeded(self, caplog: pytest.LogCaptureFixture) -> None:
        """Test the message when no file could be minified."""
        report = StageReport(stage="minify-html")
        report.record(FileOutcome.failure(Path("a.html"), "boom"))

        with caplog.at_level(logging.INFO, logger="site_optimizer.minify"):
            log_summary(report)

        assert "No files were processed successfully." in caplog.text
