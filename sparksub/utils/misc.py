"""
Miscellaneous utility functions for the sparksub CLI.

This module provides helpers that turn command line input into the
objects the planner and runner work with.

Key utilities:
- parse_weights: Parse "tag=weight" pairs into a weight table
- build_jobs: Pair --tags with --progs into JobSpecs
- format_elapsed: Human readable duration for summaries
"""

import typer
from typing import Dict, List, Optional, Sequence

from sparksub.models import JobSpec

DEFAULT_TAG = "compute"


def parse_weights(pairs: Sequence[str]) -> Dict[str, float]:
    """
    Parse tag weight assignments.

    Accepts repeated "tag=weight" values, each optionally holding several
    comma separated pairs (e.g. "compute=1,storage=2").

    :param pairs: Raw option values.
    :return: Mapping of tag to weight.
    """
    weights: Dict[str, float] = {}
    for raw in pairs:
        for item in raw.split(","):
            item = item.strip()
            if not item:
                continue
            if "=" not in item:
                raise typer.BadParameter(f"Expected TAG=WEIGHT, got {item!r}")

            tag, value = item.split("=", 1)
            tag = tag.strip()
            if not tag:
                raise typer.BadParameter(f"Missing tag in {item!r}")
            try:
                weight = float(value)
            except ValueError:
                raise typer.BadParameter(f"Weight for '{tag}' is not a number: {value!r}")
            if weight < 0:
                raise typer.BadParameter(f"Weight for '{tag}' must be >= 0")
            weights[tag] = weight
    return weights


def build_jobs(tags: Sequence[str], progs: Sequence[str],
               weights: Optional[Sequence[float]] = None) -> List[JobSpec]:
    """
    Pair tags and program strings into JobSpecs.

    Tags and programs are matched by position. With no tags at all every
    job is tagged "compute".

    :param tags: One resource-class tag per program, or none.
    :param progs: Program strings, "<uri> <arg> <arg>...".
    :param weights: Optional per-job weights, matched by position.
    :return: Jobs in input order.
    """
    tags = list(tags) or [DEFAULT_TAG] * len(progs)
    if len(tags) != len(progs):
        raise typer.BadParameter(
            f"Got {len(tags)} tag(s) for {len(progs)} program(s); "
            "--tags must be given once per --progs, in the same order"
        )

    weights = list(weights or [])
    if weights and len(weights) != len(progs):
        raise typer.BadParameter(f"Got {len(weights)} weight(s) for {len(progs)} program(s)")

    jobs = []
    for i, (tag, prog) in enumerate(zip(tags, progs)):
        try:
            jobs.append(JobSpec.from_prog(prog, tag, weights[i] if weights else None))
        except ValueError as e:
            raise typer.BadParameter(f"Job {i}: {e}")
    return jobs


def format_elapsed(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f} ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m{secs:02d}s"
