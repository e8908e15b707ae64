#!/usr/bin/env python3
"""Developer CLI: inspect complexity scoring, routing decisions, and model profiles."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from aris_routing.routing.complexity_analyzer import TaskComplexityAnalyzer
from aris_routing.routing.model_registry import ModelRegistry
from aris_routing.routing.model_router import ModelRouter
from aris_routing.routing.models import SituationalFlags, TaskType
from aris_routing.settings import Settings, load_settings

console = Console()


def _load_optional_settings() -> Optional[Settings]:
    """Settings are optional here; neither subcommand calls the provider."""
    try:
        return load_settings()
    except ValueError:
        return None


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aris-route", description="Inspect task complexity scoring and model routing."
    )
    parser.add_argument("--profiles", type=Path, help="YAML file with model profiles")
    parser.add_argument("--log-level", help="Logging level (defaults to LOG_LEVEL or WARNING)")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Score a task and show the routing decision")
    analyze.add_argument("text", help="Task text")
    analyze.add_argument(
        "--task-type",
        choices=[t.value for t in TaskType],
        help="Task-type tag (inferred from the text when omitted)",
    )
    analyze.add_argument("--external", action="store_true", help="Requires an external lookup")
    analyze.add_argument(
        "--cross-entity", action="store_true", help="Requires a cross-entity lookup"
    )
    analyze.add_argument("--override", help="Caller-requested model id")

    sub.add_parser("models", help="List registered model profiles")
    return parser


def _render_analysis(args: argparse.Namespace, registry: ModelRegistry) -> None:
    analyzer = TaskComplexityAnalyzer()
    router = ModelRouter(registry)

    task_type = TaskType(args.task_type) if args.task_type else analyzer.infer_task_type(args.text)
    flags = SituationalFlags(
        requires_external_lookup=args.external,
        requires_cross_entity_lookup=args.cross_entity,
    )
    score = analyzer.analyze(args.text, flags)
    decision = router.route(
        score,
        task_type=task_type,
        flags=flags,
        override=args.override,
        input_chars=len(args.text),
    )

    scores = Table(title="Complexity", show_header=True, header_style="bold")
    scores.add_column("Signal")
    scores.add_column("Score", justify="right")
    scores.add_row("pattern", f"{score.pattern:.1f}")
    scores.add_row("linguistic", f"{score.linguistic:.1f}")
    scores.add_row("situational", f"{score.situational:.1f}")
    scores.add_row("[bold]composite[/bold]", f"[bold]{score.composite:.2f}[/bold]")
    console.print(scores)

    console.print(
        Panel(
            "\n".join(
                [
                    f"[bold]Task type:[/bold] {task_type.value}",
                    f"[bold]Class:[/bold] {score.complexity_class.value} "
                    f"(confidence {score.confidence:.2f})",
                    f"[bold]Model:[/bold] {decision.model_id} ({decision.provider_model})",
                    f"[bold]Rule:[/bold] {decision.rule.value}",
                    f"[bold]Alternatives:[/bold] {', '.join(decision.alternatives) or '-'}",
                    f"[bold]Estimate:[/bold] {decision.estimated_work_units} units, "
                    f"${decision.estimated_cost:.6f}",
                    "",
                    *[f"- {line}" for line in decision.reasoning],
                ]
            ),
            title="Routing decision",
            border_style="blue",
        )
    )


def _render_models(registry: ModelRegistry) -> None:
    table = Table(title="Model profiles", show_header=True, header_style="bold")
    for column in ("Id", "Provider model", "R/S/C/A", "$/1k units", "Max input", "Suitable for"):
        table.add_column(column)
    for profile in sorted(registry.all(), key=lambda p: p.cost_per_1k_units):
        caps = profile.capabilities
        table.add_row(
            profile.id,
            profile.provider_model,
            f"{caps.reasoning}/{caps.speed}/{caps.creativity}/{caps.accuracy}",
            f"{profile.cost_per_1k_units:g}",
            str(profile.max_input_units),
            ", ".join(sorted(c.value for c in profile.suitable_for)),
        )
    console.print(table)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the ``aris-route`` command."""
    args = _build_parser().parse_args(argv)
    settings = _load_optional_settings()

    level = args.log_level or (settings.log_level if settings else "WARNING")
    logging.basicConfig(level=level.upper(), format="%(levelname)s %(name)s %(message)s")

    profiles_path = args.profiles or (settings.model_profiles_path if settings else None)
    try:
        registry = ModelRegistry.from_path(profiles_path)
    except (OSError, ValueError) as e:
        console.print(f"[red]Could not load model profiles: {e}[/red]")
        return 1

    if args.command == "models":
        _render_models(registry)
    else:
        _render_analysis(args, registry)
    return 0


if __name__ == "__main__":
    sys.exit(main())
