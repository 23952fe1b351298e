"""Sequential orchestration of the site build and the optimization stages."""

from __future__ import annotations

import logging
import shlex
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .config import OptimizeConfig

logger = logging.getLogger("site_optimizer.pipeline")

Runner = Callable[..., "subprocess.CompletedProcess"]


@dataclass
class PipelineStage:
    """A single step of the pipeline, executed as its own process."""

    name: str
    description: str
    argv: List[str]
    cwd: Optional[Path] = None


class StageFailed(RuntimeError):
    """Raised when a stage exits non-zero or cannot be started."""

    def __init__(self, stage: PipelineStage, returncode: Optional[int], reason: str = "") -> None:
        self.stage = stage
        self.returncode = returncode
        detail = reason or f"exit code {returncode}"
        super().__init__(f"Stage '{stage.name}' ({stage.description}) failed with {detail}")


def stage_command(stage_name: str, config: OptimizeConfig) -> List[str]:
    argv = [
        sys.executable,
        "-m",
        "site_optimizer.cli",
        stage_name,
        "--output",
        str(config.output_root),
    ]
    if config.verbose:
        argv.append("--verbose")
    return argv


def build_stages(config: OptimizeConfig, include_build: bool = True) -> List[PipelineStage]:
    """Return the stages in the order they must run."""
    stages: List[PipelineStage] = []
    if include_build:
        stages.append(
            PipelineStage(
                name="build",
                description="Building static site",
                argv=shlex.split(config.build_command),
                cwd=config.project_root,
            )
        )

    strip_argv = stage_command("strip-scripts", config)
    if not config.remove_script_files:
        strip_argv.append("--keep-script-files")

    css_argv = stage_command("optimize-css", config)
    css_argv += ["--timeout", str(config.render_timeout)]
    for selector in config.safelist:
        css_argv += ["--safelist", selector]
    if not config.inline_critical:
        css_argv.append("--skip-critical")

    stages.extend(
        [
            PipelineStage("strip-scripts", "Stripping all JavaScript", strip_argv),
            PipelineStage("optimize-css", "Optimizing CSS", css_argv),
            PipelineStage("minify-html", "Minifying HTML", stage_command("minify-html", config)),
        ]
    )
    return stages


def run_stage(stage: PipelineStage, runner: Runner = subprocess.run) -> None:
    logger.info("=== %s ===", stage.description)
    logger.debug("Running %s", " ".join(stage.argv))
    try:
        completed = runner(stage.argv, cwd=stage.cwd, check=False)
    except OSError as exc:
        raise StageFailed(stage, None, reason=str(exc)) from exc
    if completed.returncode != 0:
        raise StageFailed(stage, completed.returncode)


def run_pipeline(
    stages: Sequence[PipelineStage],
    runner: Runner = subprocess.run,
) -> List[str]:
    """Run every stage in order, stopping at the first failure.

    Files already rewritten by completed stages are not restored when a
    later stage fails.
    """
    completed: List[str] = []
    overall_start = time.perf_counter()
    logger.info("=== Starting optimization pipeline ===")
    for stage in stages:
        try:
            run_stage(stage, runner)
        except StageFailed:
            if completed:
                logger.warning(
                    "Changes made by earlier stages (%s) were left in place",
                    ", ".join(completed),
                )
            raise
        completed.append(stage.name)

    logger.info(
        "=== Optimization complete in %.2fs (%d stages) ===",
        time.perf_counter() - overall_start,
        len(completed),
    )
    return completed
