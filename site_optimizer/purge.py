"""Remove CSS rules whose selectors match nothing in the exported HTML."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Union

from bs4 import BeautifulSoup
from soupsieve import SelectorSyntaxError

logger = logging.getLogger("site_optimizer.purge")

# At-rules whose block holds nested rules that can be purged individually.
GROUPING_AT_RULES = {"media", "supports", "layer", "container", "document", "-moz-document"}

_COMMENT_PATTERN = re.compile(r"/\*.*?\*/", re.S)
_AT_NAME_PATTERN = re.compile(r"@([-\w]+)")

# Pseudo-classes that depend on interaction and pseudo-elements that never
# appear in a static tree. The source is also compiled as a JavaScript
# RegExp by the critical CSS collector, so it must stay within the syntax
# both engines share.
DYNAMIC_PSEUDO_SOURCE = (
    r"::?(?:hover|focus-within|focus-visible|focus|active|visited|link|target|"
    r"before|after|first-line|first-letter|placeholder|selection|marker|backdrop|"
    r"-webkit-[-\w]+|-moz-[-\w]+|-ms-[-\w]+)(?![-\w])"
)
_DYNAMIC_PSEUDO_PATTERN = re.compile(DYNAMIC_PSEUDO_SOURCE, re.I)
_ATTRIBUTE_PATTERN = re.compile(r"\[[^\]]*\]")
_PSEUDO_PATTERN = re.compile(r"::?[-\w]+(?:\([^)]*\))?")
_NAME_PATTERN = re.compile(r"[.#]?-?[_a-zA-Z][-\w]*")


@dataclass
class StyleRule:
    selectors: List[str]
    declarations: str


@dataclass
class AtRule:
    prelude: str
    block: Optional[str] = None
    children: Optional[List["CssNode"]] = None

    @property
    def name(self) -> str:
        match = _AT_NAME_PATTERN.match(self.prelude)
        return match.group(1).lower() if match else ""


CssNode = Union[StyleRule, AtRule]


def _scan(css: str, start: int, stops: str) -> int:
    """Index of the first stop character outside strings and parentheses."""
    quote: Optional[str] = None
    depth = 0
    index = start
    while index < len(css):
        char = css[index]
        if quote:
            if char == "\\":
                index += 1
            elif char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char == "(":
            depth += 1
        elif char == ")":
            depth = max(0, depth - 1)
        elif depth == 0 and char in stops:
            return index
        index += 1
    return len(css)


def _matching_brace(css: str, open_index: int) -> int:
    depth = 0
    index = open_index
    while index < len(css):
        index = _scan(css, index, "{}")
        if index >= len(css):
            break
        depth += 1 if css[index] == "{" else -1
        if depth == 0:
            return index
        index += 1
    return len(css)


def split_selectors(prelude: str) -> List[str]:
    """Split a selector list on top-level commas."""
    parts: List[str] = []
    buf: List[str] = []
    quote: Optional[str] = None
    depth = 0
    for char in prelude:
        if quote:
            if char == quote:
                quote = None
        elif char in "\"'":
            quote = char
        elif char in "([":
            depth += 1
        elif char in ")]":
            depth = max(0, depth - 1)
        elif char == "," and depth == 0:
            parts.append("".join(buf).strip())
            buf = []
            continue
        buf.append(char)
    parts.append("".join(buf).strip())
    return [part for part in parts if part]


def parse_stylesheet(css: str) -> List[CssNode]:
    """Parse CSS text into style rules and at-rules."""
    return _parse_block(_COMMENT_PATTERN.sub("", css))


def _parse_block(css: str) -> List[CssNode]:
    nodes: List[CssNode] = []
    index = 0
    while index < len(css):
        char = css[index]
        if char.isspace() or char in ";}":
            index += 1
            continue
        stop = _scan(css, index, "{;")
        prelude = css[index:stop].strip()
        if stop >= len(css):
            if prelude.startswith("@"):
                nodes.append(AtRule(prelude))
            break
        if css[stop] == ";":
            if prelude.startswith("@"):
                nodes.append(AtRule(prelude))
            index = stop + 1
            continue

        end = _matching_brace(css, stop)
        body = css[stop + 1 : end]
        if prelude.startswith("@"):
            rule = AtRule(prelude)
            if rule.name in GROUPING_AT_RULES:
                rule.children = _parse_block(body)
            else:
                rule.block = body
            nodes.append(rule)
        else:
            nodes.append(StyleRule(split_selectors(prelude), body.strip()))
        index = end + 1
    return nodes


def serialize(nodes: Iterable[CssNode]) -> str:
    parts: List[str] = []
    for node in nodes:
        if isinstance(node, StyleRule):
            parts.append(f"{','.join(node.selectors)}{{{node.declarations}}}")
        elif node.children is not None:
            parts.append(f"{node.prelude}{{{serialize(node.children)}}}")
        elif node.block is not None:
            parts.append(f"{node.prelude}{{{node.block.strip()}}}")
        else:
            parts.append(f"{node.prelude};")
    return "\n".join(parts)


def normalize_selector(selector: str) -> str:
    """Remove pseudo-classes and pseudo-elements that cannot match static HTML."""
    cleaned = _DYNAMIC_PSEUDO_PATTERN.sub("", selector).strip()
    if not cleaned or cleaned[-1] in ">+~":
        cleaned = f"{cleaned} *".strip()
    return cleaned


def selector_names(selector: str) -> List[str]:
    """Tag, class and id names referenced by a selector."""
    stripped = _PSEUDO_PATTERN.sub(" ", _ATTRIBUTE_PATTERN.sub(" ", selector))
    return [token.lstrip(".#") for token in _NAME_PATTERN.findall(stripped)]


@dataclass
class SelectorMatcher:
    """Decides whether a selector is used by any document in the corpus."""

    documents: Sequence[BeautifulSoup]
    safelist: Iterable[str] = ("html", "body")
    _cache: Dict[str, bool] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self.safelist = frozenset(self.safelist)

    def is_safelisted(self, selector: str) -> bool:
        names = selector_names(selector)
        return bool(names) and all(name in self.safelist for name in names)

    def is_used(self, selector: str) -> bool:
        if selector in self._cache:
            return self._cache[selector]
        used = self.is_safelisted(selector) or self._matches_any(selector)
        self._cache[selector] = used
        return used

    def _matches_any(self, selector: str) -> bool:
        normalized = normalize_selector(selector)
        for document in self.documents:
            try:
                if document.select_one(normalized) is not None:
                    return True
            except (SelectorSyntaxError, NotImplementedError, ValueError) as exc:
                logger.debug("Keeping selector %r that cannot be evaluated: %s", selector, exc)
                return True
        return False


def purge_nodes(nodes: Iterable[CssNode], matcher: SelectorMatcher) -> List[CssNode]:
    kept: List[CssNode] = []
    for node in nodes:
        if isinstance(node, StyleRule):
            selectors = [selector for selector in node.selectors if matcher.is_used(selector)]
            if selectors:
                kept.append(StyleRule(selectors, node.declarations))
            continue
        if node.children is not None:
            children = purge_nodes(node.children, matcher)
            if children:
                kept.append(AtRule(node.prelude, children=children))
            continue
        kept.append(node)
    return kept


def purge_css(css: str, matcher: SelectorMatcher) -> str:
    """Return ``css`` with every rule unused by the matcher's documents removed."""
    return serialize(purge_nodes(parse_stylesheet(css), matcher))
