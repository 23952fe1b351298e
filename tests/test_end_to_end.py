"""End-to-end run of the three stages over a small export."""

from pathlib import Path

from bs4 import BeautifulSoup

from site_optimizer.config import OptimizeConfig
from site_optimizer.minify import minify_tree
from site_optimizer.scripts import strip_tree
from site_optimizer.styles import optimize_styles

from conftest import FakeExtractor


def test_full_pipeline_over_one_page(site_dir: Path) -> None:
    """Test the page, the stylesheet and the script files after every stage has run."""
    config = OptimizeConfig(output_root=site_dir)

    strip_tree(config)
    optimize_styles(config, extractor=FakeExtractor(css=""))
    minify_tree(config)

    html = (site_dir / "index.html").read_text(encoding="utf-8")
    soup = BeautifulSoup(html, "html.parser")

    assert soup.find("script") is None
    assert soup.find(attrs={"onclick": True}) is None
    assert "<!--" not in html

    links = [
        link
        for link in soup.select('link[rel~="stylesheet"]')
        if link.find_parent("noscript") is None
    ]
    assert len(links) == 1
    link = links[0]
    assert link["media"] == "print"
    assert "this.media" in link["onload"]
    fallback = link.find_next_sibling()
    assert fallback.name == "noscript"
    assert fallback.find("link")["href"] == link["href"] == "/_next/static/css/app.css"

    css = (site_dir / "_next" / "static" / "css" / "app.css").read_text(encoding="utf-8")
    assert ".used{color:red" in css
    assert ".unused" not in css
    assert "\n" not in css.strip()

    assert list(site_dir.rglob("*.js")) == []
    assert list(site_dir.rglob("*.mjs")) == []
