"""Command-line entry point for the static site optimizer."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Iterable, Sequence

from .config import (
    DEFAULT_BUILD_COMMAND,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_RENDER_TIMEOUT,
    DEFAULT_SAFELIST,
    OptimizeConfig,
)
from .minify import minify_tree
from .pipeline import StageFailed, build_stages, run_pipeline
from .scripts import strip_tree
from .styles import optimize_styles

logger = logging.getLogger("site_optimizer.cli")


def _ensure_command_prefix(argv: Sequence[str], commands: Iterable[str]) -> Sequence[str]:
    if not argv:
        return ("all",)
    first = argv[0]
    if first in commands or first in ("-h", "--help"):
        return argv
    return ("all", *argv)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--output",
        default=DEFAULT_OUTPUT_DIR,
        type=Path,
        help="Static export directory to optimize in place",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )


def _add_strip_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--keep-script-files",
        action="store_true",
        help="Strip script markup from HTML but leave .js files on disk",
    )


def _add_css_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--safelist",
        action="append",
        default=None,
        metavar="NAME",
        help="Tag, class or id name whose selectors are never purged (repeatable; default: html, body)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_RENDER_TIMEOUT,
        help="Seconds allowed for each page render during critical CSS extraction",
    )
    parser.add_argument(
        "--skip-critical",
        action="store_true",
        help="Do not compute or inline above-the-fold CSS",
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Strip JavaScript, purge and inline CSS, and minify HTML in a static site export."
        ),
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    all_parser = subparsers.add_parser(
        "all", help="Build the site and run every optimization stage (default)"
    )
    _add_common_arguments(all_parser)
    _add_strip_arguments(all_parser)
    _add_css_arguments(all_parser)
    all_parser.add_argument(
        "--build-command",
        default=DEFAULT_BUILD_COMMAND,
        help="Command that produces the static export",
    )
    all_parser.add_argument(
        "--project-root",
        default=Path("."),
        type=Path,
        help=(
            "Directory the build command runs in. A relative --output is "
            "resolved against it unless --skip-build is given"
        ),
    )
    all_parser.add_argument(
        "--skip-build",
        action="store_true",
        help="Optimize the existing output without rebuilding",
    )

    strip_parser = subparsers.add_parser(
        "strip-scripts", help="Remove scripts and event handlers from the HTML"
    )
    _add_common_arguments(strip_parser)
    _add_strip_arguments(strip_parser)

    css_parser = subparsers.add_parser(
        "optimize-css", help="Purge, minify and inline CSS, then defer stylesheets"
    )
    _add_common_arguments(css_parser)
    _add_css_arguments(css_parser)

    minify_parser = subparsers.add_parser("minify-html", help="Minify every HTML file")
    _add_common_arguments(minify_parser)

    argv = list(sys.argv[1:] if argv is None else argv)
    argv = list(_ensure_command_prefix(argv, subparsers.choices.keys()))
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> OptimizeConfig:
    config = OptimizeConfig(
        output_root=Path(args.output).resolve(),
        verbose=args.verbose,
    )
    if hasattr(args, "keep_script_files"):
        config.remove_script_files = not args.keep_script_files
    if hasattr(args, "safelist"):
        config.safelist = tuple(args.safelist) if args.safelist else DEFAULT_SAFELIST
        config.render_timeout = args.timeout
        config.inline_critical = not args.skip_critical
    if hasattr(args, "build_command"):
        config.build_command = args.build_command
        config.project_root = Path(args.project_root).resolve()
        # The build writes its export relative to the project it runs in.
        if not args.skip_build:
            config.output_root = (config.project_root / args.output).resolve()
    return config


def _run_all(args: argparse.Namespace, config: OptimizeConfig) -> None:
    stages = build_stages(config, include_build=not args.skip_build)
    run_pipeline(stages)
    logger.info("The output in %s is ready to be deployed.", config.output_root)


def _run_stage(args: argparse.Namespace, config: OptimizeConfig) -> None:
    if args.command == "strip-scripts":
        strip_tree(config)
    elif args.command == "optimize-css":
        optimize_styles(config)
    else:
        minify_tree(config)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )
    config = build_config(args)

    try:
        if args.command == "all":
            _run_all(args, config)
        else:
            _run_stage(args, config)
    except FileNotFoundError as exc:
        logger.error("%s", exc)
        return 1
    except StageFailed as exc:
        logger.error("%s; aborting", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
