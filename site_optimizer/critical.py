"""Above-the-fold CSS extraction backed by headless Chromium."""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import List, Optional, Sequence
from urllib.parse import unquote, urlparse

import rcssmin
from bs4 import BeautifulSoup
from playwright.async_api import Browser, Playwright, Route, async_playwright

from .config import Viewport
from .purge import DYNAMIC_PSEUDO_SOURCE

logger = logging.getLogger("site_optimizer.critical")

SITE_ORIGIN = "http://static.localhost"
CRITICAL_ATTRIBUTE = "data-critical"

# Runs inside the page with the dynamic pseudo pattern as its argument.
# Returns the cssText of every rule that styles an element starting above the
# fold at the current viewport, wrapped in the conditional and layer blocks
# that enclose it.
_COLLECT_RULES_SCRIPT = """
(dynamicSource) => {
  const fold = window.innerHeight;
  const dynamic = new RegExp(dynamicSource, 'gi');
  const aboveFold = (selectorText) => {
    let cleaned = selectorText.replace(dynamic, '').trim();
    if (!cleaned) cleaned = '*';
    let nodes;
    try {
      nodes = document.querySelectorAll(cleaned);
    } catch (err) {
      return false;
    }
    for (const node of nodes) {
      if (node.getBoundingClientRect().top < fold) return true;
    }
    return false;
  };
  const prelude = (rule) => rule.cssText.slice(0, rule.cssText.indexOf('{')).trim();
  const wrap = (header, inner) => (inner.length ? [`${header}{${inner.join('')}}`] : []);
  const isLayerStatement = (rule) =>
    typeof CSSLayerStatementRule !== 'undefined' && rule instanceof CSSLayerStatementRule;
  const collect = (rules) => {
    const found = [];
    for (const rule of rules) {
      if (rule instanceof CSSStyleRule) {
        if (aboveFold(rule.selectorText)) found.push(rule.cssText);
      } else if (rule instanceof CSSImportRule) {
        let imported = null;
        try {
          imported = rule.styleSheet && rule.styleSheet.cssRules;
        } catch (err) {
          continue;
        }
        if (!imported) continue;
        const media = rule.media.mediaText;
        if (media && !window.matchMedia(media).matches) continue;
        let inner = collect(imported);
        if (media) inner = wrap(`@media ${media}`, inner);
        if (typeof rule.layerName === 'string') {
          inner = wrap(rule.layerName ? `@layer ${rule.layerName}` : '@layer', inner);
        }
        found.push(...inner);
      } else if (rule instanceof CSSMediaRule) {
        if (!window.matchMedia(rule.media.mediaText).matches) continue;
        found.push(...wrap(`@media ${rule.media.mediaText}`, collect(rule.cssRules)));
      } else if (rule instanceof CSSSupportsRule) {
        if (!CSS.supports(rule.conditionText)) continue;
        found.push(...wrap(`@supports ${rule.conditionText}`, collect(rule.cssRules)));
      } else if (rule instanceof CSSGroupingRule) {
        found.push(...wrap(prelude(rule), collect(rule.cssRules)));
      } else if (rule instanceof CSSFontFaceRule || isLayerStatement(rule)) {
        found.push(rule.cssText);
      }
    }
    return found;
  };
  const result = [];
  for (const sheet of document.styleSheets) {
    const owner = sheet.ownerNode;
    if (owner && owner.hasAttribute && owner.hasAttribute('data-critical')) continue;
    let rules;
    try {
      rules = sheet.cssRules;
    } catch (err) {
      continue;
    }
    result.push(...collect(rules));
  }
  return result;
}
"""


def page_url(html_path: Path, root: Path) -> str:
    """Address a file in the output tree under the synthetic site origin."""
    return f"{SITE_ORIGIN}/{html_path.relative_to(root).as_posix()}"


def resolve_request_path(url: str, root: Path) -> Optional[Path]:
    """Map a request URL on the site origin back to a file under ``root``."""
    relative = unquote(urlparse(url).path).lstrip("/")
    candidate = (root / relative).resolve()
    resolved_root = root.resolve()
    if candidate != resolved_root and resolved_root not in candidate.parents:
        return None
    if candidate.is_dir():
        candidate = candidate / "index.html"
    if not candidate.is_file():
        html_candidate = candidate.with_name(candidate.name + ".html")
        return html_candidate if html_candidate.is_file() else None
    return candidate


def merge_rules(batches: Sequence[Sequence[str]]) -> str:
    """Union of the rules found at each viewport, in first-seen order."""
    seen = set()
    merged: List[str] = []
    for batch in batches:
        for rule in batch:
            if rule not in seen:
                seen.add(rule)
                merged.append(rule)
    return rcssmin.cssmin("\n".join(merged))


def inline_critical_css(html: str, css: str) -> str:
    """Insert ``css`` as a ``<style data-critical>`` block ahead of the stylesheets."""
    soup = BeautifulSoup(html, "html.parser")
    for existing in soup.find_all("style", attrs={CRITICAL_ATTRIBUTE: True}):
        existing.decompose()

    style = soup.new_tag("style", attrs={CRITICAL_ATTRIBUTE: ""})
    style.string = css

    first_link = soup.select_one('link[rel~="stylesheet"]')
    if first_link is not None:
        first_link.insert_before(style)
    elif soup.head is not None:
        soup.head.append(style)
    else:
        soup.insert(0, style)
    return soup.decode()


class CriticalCssExtractor:
    """Renders pages from the output tree and collects their above-the-fold CSS."""

    def __init__(self, root: Path, viewports: Sequence[Viewport], timeout: float) -> None:
        self.root = root
        self.viewports = tuple(viewports)
        self.timeout = timeout
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None

    async def _ensure_browser(self) -> Browser:
        if self._browser is None:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            logger.info("Launching headless Chromium for critical CSS")
            self._browser = await self._playwright.chromium.launch(headless=True)
        return self._browser

    async def _serve(self, route: Route) -> None:
        path = resolve_request_path(route.request.url, self.root)
        if path is None:
            await route.fulfill(status=404, body="")
            return
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        await route.fulfill(path=str(path), content_type=content_type)

    async def _collect(self, browser: Browser, url: str, viewport: Viewport) -> List[str]:
        page = await browser.new_page(viewport={"width": viewport.width, "height": viewport.height})
        page.set_default_navigation_timeout(self.timeout * 1000)
        try:
            await page.route(f"{SITE_ORIGIN}/**", self._serve)
            await page.goto(url, wait_until="load")
            rules = await page.evaluate(_COLLECT_RULES_SCRIPT, DYNAMIC_PSEUDO_SOURCE)
        finally:
            await page.close()
        logger.debug("Found %d critical rules at %dx%d", len(rules), viewport.width, viewport.height)
        return list(rules)

    async def extract(self, html_path: Path) -> str:
        """Return the minified critical CSS for one page."""
        browser = await self._ensure_browser()
        url = page_url(html_path, self.root)
        batches = [await self._collect(browser, url, viewport) for viewport in self.viewports]
        return merge_rules(batches)

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
