"""Configuration objects and constants for the optimizer."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Tuple

DEFAULT_OUTPUT_DIR = "out"
DEFAULT_BUILD_COMMAND = "npm run build"
DEFAULT_HYDRATION_ELEMENT_ID = "__NEXT_DATA__"
DEFAULT_SCRIPT_SUFFIXES = (".js", ".mjs")
DEFAULT_SAFELIST = ("html", "body")
DEFAULT_RENDER_TIMEOUT = 60.0


@dataclass(frozen=True)
class Viewport:
    """Browser window size used when rendering a page."""

    width: int
    height: int


MOBILE_VIEWPORT = Viewport(width=375, height=667)
DESKTOP_VIEWPORT = Viewport(width=1280, height=800)
DEFAULT_VIEWPORTS = (MOBILE_VIEWPORT, DESKTOP_VIEWPORT)


@dataclass
class OptimizeConfig:
    """Top-level settings that control the build and every optimization stage."""

    output_root: Path
    project_root: Path = field(default_factory=Path.cwd)
    build_command: str = DEFAULT_BUILD_COMMAND
    remove_script_files: bool = True
    script_suffixes: Tuple[str, ...] = DEFAULT_SCRIPT_SUFFIXES
    hydration_element_id: str = DEFAULT_HYDRATION_ELEMENT_ID
    safelist: Tuple[str, ...] = DEFAULT_SAFELIST
    viewports: Tuple[Viewport, ...] = DEFAULT_VIEWPORTS
    render_timeout: float = DEFAULT_RENDER_TIMEOUT
    inline_critical: bool = True
    verbose: bool = False
