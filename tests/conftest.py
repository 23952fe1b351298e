"""Pytest configuration and fixtures."""

from pathlib import Path

import pytest

from site_optimizer.config import OptimizeConfig

PAGE_HTML = """<!DOCTYPE html>
<html lang="en">
  <head>
    <title>Home</title>
    <link rel="stylesheet" href="/_next/static/css/app.css">
    <link rel="preload" as="script" href="/_next/static/chunks/main.js">
  </head>
  <body>
    <!-- hero -->
    <main class="used">
      <button onclick="alert('hi')">Say hi</button>
    </main>
    <script src="/_next/static/chunks/main.js"></script>
    <script id="__NEXT_DATA__" type="application/json">{"props":{}}</script>
  </body>
</html>
"""

APP_CSS = """
/* layout */
.used {
    color: red;
}

.unused {
    color: blue;
}
"""


class FakeExtractor:
    """Stands in for the browser-backed critical CSS extractor."""

    def __init__(self, css: str = "", fail_on: tuple = ()) -> None:
        self.css = css
        self.fail_on = fail_on
        self.seen: list[Path] = []
        self.closed = False

    async def extract(self, html_path: Path) -> str:
        self.seen.append(html_path)
        if html_path.name in self.fail_on:
            raise RuntimeError(f"render failed for {html_path.name}")
        return self.css

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def site_dir(tmp_path: Path) -> Path:
    """Create a minimal static export with one page, one stylesheet and script chunks."""
    root = tmp_path / "out"
    css_dir = root / "_next" / "static" / "css"
    chunk_dir = root / "_next" / "static" / "chunks"
    css_dir.mkdir(parents=True)
    chunk_dir.mkdir(parents=True)

    (root / "index.html").write_text(PAGE_HTML, encoding="utf-8")
    (css_dir / "app.css").write_text(APP_CSS, encoding="utf-8")
    (chunk_dir / "main.js").write_text("console.log('hydrate');", encoding="utf-8")
    (chunk_dir / "webpack.mjs").write_text("export default 1;", encoding="utf-8")
    (root / "favicon.svg").write_text("<svg></svg>", encoding="utf-8")
    return root


@pytest.fixture
def config(site_dir: Path) -> OptimizeConfig:
    return OptimizeConfig(output_root=site_dir, inline_critical=False)
