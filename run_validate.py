#!/usr/bin/env python3
"""
Quorum - Validate a source document across several agents.

Usage:
    python run_validate.py <source-file> [question context]

Agents are the enabled entries of `consensus.agents` in config.yaml; each
is reached through the pool service at `pool.url`.
"""

import asyncio
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from quorum.src.config import create_coordinator, create_source_validator, load_config
from quorum.src.errors import ConsensusAbortError, NoAgentsConfiguredError
from quorum.src.models import SourceValidationResult
from shared.logging import get_logger, setup_logging

log = get_logger("quorum", "run_validate")

console = Console()


def print_result(result: SourceValidationResult):
    """Render a validation result."""
    consensus = result.fact_consensus

    table = Table(title="Agents")
    table.add_column("Agent", style="cyan")
    table.add_column("Facts", justify="right")
    table.add_column("Citations", justify="right")
    table.add_column("Confidence", justify="right", style="green")
    for extraction in result.extractions:
        table.add_row(
            extraction.agent_id,
            str(len(extraction.facts)),
            str(len(extraction.citations)),
            f"{extraction.confidence:.2f}",
        )
    console.print(table)

    if consensus.agreed_facts:
        console.print(Panel("[bold]Agreed Facts[/bold]"))
        for fact in consensus.agreed_facts:
            console.print(f"  • [green]{fact}[/green]")

    if consensus.partial_agreement_facts:
        console.print(Panel("[bold]Partial Agreement[/bold]"))
        for item in consensus.partial_agreement_facts:
            console.print(
                f"  • {item.fact} [dim]({item.agreement_percentage:.0%}, "
                f"missing: {', '.join(item.disagreeing_agents)})[/dim]"
            )

    if consensus.disagreed_facts:
        console.print(Panel("[bold]Single-Agent Facts[/bold]"))
        for fact in consensus.disagreed_facts:
            console.print(f"  • [yellow]{fact}[/yellow]")

    if result.discrepancies:
        console.print(Panel("[bold]Discrepancies[/bold]"))
        for discrepancy in result.discrepancies:
            console.print(f"  • [red]{discrepancy.description}[/red] ({discrepancy.source_section})")
            for interpretation in discrepancy.conflicting_interpretations:
                console.print(f"      - {interpretation}")

    console.print(Panel(f"[bold]Validation confidence:[/bold] {result.validation_confidence:.2f}"))


async def run(source: str, question_context, config: dict):
    coordinator = create_coordinator(config)
    validator = create_source_validator(coordinator, config)
    try:
        return await validator.validate_source(source, question_context)
    finally:
        for agent in coordinator.agents:
            await agent.close()


def main():
    if len(sys.argv) < 2:
        console.print(__doc__)
        sys.exit(1)

    source_path = Path(sys.argv[1])
    if not source_path.exists():
        console.print(f"[red]File not found: {source_path}[/red]")
        sys.exit(1)

    config = load_config()
    logging_config = config.get("logging", {})
    setup_logging(logging_config.get("level", "INFO"), logging_config.get("file"))

    question_context = " ".join(sys.argv[2:]) or None
    source = source_path.read_text(encoding="utf-8")

    try:
        result = asyncio.run(run(source, question_context, config))
    except NoAgentsConfiguredError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    except ConsensusAbortError as e:
        console.print(f"[red]{e}[/red]")
        for suggestion in e.decision.suggestions:
            console.print(f"  • {suggestion}")
        log.error("quorum.validation.aborted", category=e.decision.category.value)
        sys.exit(2)

    print_result(result)


if __name__ == "__main__":
    main()
