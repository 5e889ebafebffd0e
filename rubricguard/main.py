"""
RubricGuard CLI Application.

Provides a command-line grading workspace: grade submissions against a
rubric with live justification checks and consistency alerts, then review
the session analytics.
"""

import asyncio
import logging
import threading
from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from rubricguard.analytics import ConsistencyAlert, SessionSummary, summarize
from rubricguard.catalog import (
    Catalog,
    CatalogLoadError,
    CatalogValidationError,
    CatalogValidator,
    load_catalog,
    load_sample_catalog,
)
from rubricguard.config import get_settings
from rubricguard.models import Assignment, GradedSubmission, ValidationPhase
from rubricguard.output import ReportFormat, ReportGenerator, load_session, save_session
from rubricguard.session import InvalidScoreError
from rubricguard.session.workspace import GradingSession, SessionError
from rubricguard.validation import CriterionValidator, JudgmentParseError, LLMError, create_judge

logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
LOG = logging.getLogger(__name__)

# Create Typer app
app = typer.Typer(
    name="rubricguard",
    help="Assisted grading with live justification checks and consistency alerts",
    add_completion=False,
)

console = Console()

PHASE_STYLES = {
    ValidationPhase.UNVALIDATED: "dim",
    ValidationPhase.VALIDATING: "blue",
    ValidationPhase.SUPPORTED: "green",
    ValidationPhase.PARTIALLY_SUPPORTED: "yellow",
    ValidationPhase.NOT_SUPPORTED: "red",
    ValidationPhase.ERROR: "bold red",
}

CatalogOption = Annotated[
    Optional[Path],
    typer.Option("--catalog", "-c", help="Catalog JSON file (defaults to the bundled sample)"),
]


def _set_verbose(verbose: bool) -> None:
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def _load(catalog_file: Optional[Path], validate: bool = True) -> Catalog:
    catalog = load_catalog(catalog_file) if catalog_file else load_sample_catalog()
    if validate:
        CatalogValidator(get_settings().weight_tolerance).validate_or_raise(catalog)
    return catalog


@app.command()
def check_catalog(catalog_file: CatalogOption = None) -> None:
    """
    Load a catalog and check its integrity.

    Reports duplicate ids, dangling references, repeated grading order and
    rubric weights that do not sum to 1.
    """
    try:
        catalog = _load(catalog_file, validate=False)
    except CatalogLoadError as e:
        console.print(f"[red]Catalog Error:[/red] {e}")
        raise typer.Exit(1)

    _print_assignments(catalog)

    is_valid, issues = CatalogValidator(get_settings().weight_tolerance).validate(catalog)
    if is_valid:
        console.print("\n[green]✓ Catalog is valid[/green]")
    else:
        console.print("\n[yellow]⚠ Validation issues found:[/yellow]")
        for issue in issues:
            console.print(f"  • {issue}")
        raise typer.Exit(1)


@app.command()
def assignments(catalog_file: CatalogOption = None) -> None:
    """List the assignments available for grading."""
    try:
        catalog = _load(catalog_file, validate=False)
    except CatalogLoadError as e:
        console.print(f"[red]Catalog Error:[/red] {e}")
        raise typer.Exit(1)

    _print_assignments(catalog)


@app.command()
def grade(
    assignment_id: Annotated[str, typer.Argument(help="Assignment to grade")],
    catalog_file: CatalogOption = None,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Save the graded session as JSON"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show detailed output"),
    ] = False,
) -> None:
    """
    Grade every submission of an assignment interactively.

    Each justification is checked in the background while you keep grading.
    The session analytics are shown once the last submission is graded.
    """
    _set_verbose(verbose)
    settings = get_settings()

    try:
        catalog = _load(catalog_file)
        session = GradingSession(catalog, assignment_id, create_judge(settings), settings)
    except (CatalogLoadError, CatalogValidationError, SessionError, LLMError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    try:
        graded = asyncio.run(_grade_interactively(session))
    except (KeyboardInterrupt, typer.Abort):
        session.close()
        console.print("\n[yellow]Session discarded.[/yellow]")
        raise typer.Exit(1)

    summary = summarize(graded, session.criteria, settings)
    _display_summary(summary, session.assignment)

    if output:
        saved_path = save_session(graded, output)
        console.print(f"\n[green]Session saved to:[/green] {saved_path}")


@app.command()
def report(
    session_file: Annotated[Path, typer.Argument(help="Saved session JSON")],
    assignment_id: Annotated[str, typer.Argument(help="Assignment the session belongs to")],
    catalog_file: CatalogOption = None,
    format: Annotated[
        ReportFormat,
        typer.Option("--format", "-f", help="Output format"),
    ] = ReportFormat.TEXT,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Output file path for the report"),
    ] = None,
) -> None:
    """Recompute the analytics of a saved session."""
    try:
        catalog = _load(catalog_file)
        graded = load_session(session_file)
    except (CatalogLoadError, CatalogValidationError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except (OSError, ValidationError) as e:
        console.print(f"[red]Session Error:[/red] {e}")
        raise typer.Exit(1)

    assignment = catalog.get_assignment(assignment_id)
    if assignment is None:
        console.print(f"[red]Error:[/red] Unknown assignment: {assignment_id}")
        raise typer.Exit(1)

    summary = summarize(graded, catalog.criteria_for(assignment_id), get_settings())
    generator = ReportGenerator()
    if output:
        saved_path = generator.save(summary, output, assignment, format)
        console.print(f"[green]Report saved to:[/green] {saved_path}")
    else:
        console.print(generator.generate(summary, assignment, format), markup=False)


@app.command()
def judge(
    submission_id: Annotated[str, typer.Argument(help="Submission to judge against")],
    criterion_id: Annotated[str, typer.Argument(help="Criterion being scored")],
    score: Annotated[float, typer.Argument(help="Proposed score")],
    explanation: Annotated[str, typer.Argument(help="Justification to check")],
    catalog_file: CatalogOption = None,
) -> None:
    """Ask the judgment service about a single justification."""
    try:
        catalog = _load(catalog_file, validate=False)
    except CatalogLoadError as e:
        console.print(f"[red]Catalog Error:[/red] {e}")
        raise typer.Exit(1)

    submission = catalog.get_submission(submission_id)
    criterion = catalog.get_criterion(criterion_id)
    if submission is None or criterion is None:
        console.print("[red]Error:[/red] Unknown submission or criterion")
        raise typer.Exit(1)

    try:
        judgment = asyncio.run(
            create_judge(get_settings()).judge(submission.content, criterion, score, explanation)
        )
    except LLMError as e:
        console.print(f"[red]LLM Error:[/red] {e}")
        raise typer.Exit(1)
    except JudgmentParseError as e:
        console.print(f"[red]Response Error:[/red] {e}")
        raise typer.Exit(1)

    style = PHASE_STYLES[ValidationPhase.from_status(judgment.status)]
    console.print(
        Panel(
            f"[{style}][bold]{judgment.status.value}[/bold][/{style}]\n\n"
            f"[bold]Excerpt:[/bold] \"{judgment.referenced_excerpt}\"\n"
            f"[bold]Reasoning:[/bold] {judgment.reasoning}\n"
            f"[bold]Suggestion:[/bold] {judgment.suggested_refinement}",
            title=f"{criterion.name} on {submission.id}",
        )
    )


@app.command()
def health() -> None:
    """
    Check if the judgment service is operational.

    Verifies configuration and API connectivity.
    """
    try:
        settings = get_settings()
        console.print("[bold]RubricGuard Health Check[/bold]\n")

        console.print("[dim]Checking configuration...[/dim]")
        console.print(f"  API Base URL: {settings.llm_base_url}")
        console.print(f"  Model: {settings.llm_model}")
        console.print(f"  Debounce: {settings.debounce_delay_seconds:g}s")
        console.print(f"  High-risk policy: {settings.high_risk_policy.value}")

        if not settings.has_live_judge:
            console.print("\n[yellow]No API key configured, using the local stub judge[/yellow]")
            return

        console.print("\n[dim]Checking API connectivity...[/dim]")
        judge_service = create_judge(settings)
        if asyncio.run(judge_service.health_check()):
            console.print("[green]✓ API is reachable[/green]")
        else:
            console.print("[red]✗ API is not reachable[/red]")
            raise typer.Exit(1)

        console.print("\n[green]All systems operational[/green]")

    except (ValidationError, LLMError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


# ==============================================================================
# Interactive grading
# ==============================================================================


async def _ask(text: str, default: Optional[str] = None) -> str:
    """
    Prompt without blocking the event loop, so judgments keep running.

    The prompt reads on a daemon thread: an interrupted session exits at once
    instead of waiting for a pending input() to return.
    """
    loop = asyncio.get_running_loop()
    answer: asyncio.Future[str] = loop.create_future()
    kwargs = {} if default is None else {"default": default, "show_default": False}

    def deliver(value: Optional[str], error: Optional[BaseException]) -> None:
        if answer.done():
            return
        if error is not None:
            answer.set_exception(error)
        else:
            answer.set_result(value)

    def read() -> None:
        value: Optional[str] = None
        error: Optional[BaseException] = None
        try:
            value = typer.prompt(text, **kwargs)
        except Exception as e:
            error = e
        try:
            loop.call_soon_threadsafe(deliver, value, error)
        except RuntimeError:
            LOG.debug("Prompt %r answered after the event loop closed", text)

    threading.Thread(target=read, name="rubricguard-prompt", daemon=True).start()
    return await answer


async def _grade_interactively(session: GradingSession) -> list[GradedSubmission]:
    total = len(session.submissions)

    while True:
        submission = session.current_submission
        console.print(
            Panel(
                submission.content,
                title=f"Grading {submission.student_id} ({session.current_index + 1} of {total})",
            )
        )

        for criterion in session.criteria:
            console.print(f"\n[bold cyan]{criterion.name}[/bold cyan] [dim]{criterion.description}[/dim]")

            while True:
                raw = await _ask(f"Score (0-{criterion.max_points:g})")
                try:
                    alert = session.edit_score(criterion.id, raw)
                except InvalidScoreError as e:
                    console.print(f"[red]{e}[/red]")
                    continue
                break
            if alert:
                _display_alert(alert)

            while True:
                text = await _ask("Explanation")
                if text.strip():
                    break
            session.edit_explanation(criterion.id, text)

            excerpt = await _ask("Evidence excerpt (optional)", default="")
            if excerpt.strip():
                try:
                    session.attach_highlight(criterion.id, excerpt.strip())
                except ValueError as e:
                    console.print(f"[yellow]{e}[/yellow]")

        with console.status("Waiting for justification checks..."):
            await session.settle()
        _display_validations(session)

        if session.is_last:
            return session.finalize()
        session.next_submission()


# ==============================================================================
# Display helpers
# ==============================================================================


def _print_assignments(catalog: Catalog) -> None:
    table = Table(title="Assignments")
    table.add_column("ID", style="cyan")
    table.add_column("Course")
    table.add_column("Title")
    table.add_column("Criteria", justify="right")
    table.add_column("Submissions", justify="right")

    for assignment in catalog.assignments:
        table.add_row(
            assignment.id,
            assignment.course,
            assignment.title,
            str(len(catalog.criteria_for(assignment.id))),
            str(len(catalog.submissions_for(assignment.id))),
        )

    console.print(table)


def _display_alert(alert: ConsistencyAlert) -> None:
    console.print(
        Panel(
            f"{alert.message}\n[dim]{alert.example}[/dim]",
            title="Consistency Alert",
            border_style="yellow",
        )
    )


def _display_validations(session: GradingSession) -> None:
    table = Table(title="Justification Checks")
    table.add_column("Criterion", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Status")
    table.add_column("Suggestion")

    for criterion in session.criteria:
        card: CriterionValidator = session.card(criterion.id)
        graded = session.graded(criterion.id)
        style = PHASE_STYLES[card.phase]
        suggestion = card.judgment.suggested_refinement if card.judgment else ""
        table.add_row(
            criterion.name,
            f"{graded.score:g}/{criterion.max_points:g}" if graded.score is not None else "-",
            f"[{style}]{card.phase.value}[/{style}]",
            suggestion,
        )

    console.print(table)


def _display_summary(summary: SessionSummary, assignment: Assignment) -> None:
    rate_color = "green" if summary.validity_rate >= 70 else "yellow" if summary.validity_rate >= 50 else "red"
    console.print(
        Panel(
            f"Submissions graded: [bold]{summary.total_submissions}[/bold]\n"
            f"Average score: [bold]{summary.average_score:.1f}[/bold]\n"
            f"AI support rate: [{rate_color}][bold]{summary.validity_rate:.0f}%[/bold][/{rate_color}]\n"
            f"Drift: {summary.drift.value.replace('_', ' ')}",
            title=f"Grading Session Analytics: {assignment.title}",
        )
    )

    table = Table(title="Criterion Stability (lower is better)")
    table.add_column("Criterion", style="cyan")
    table.add_column("Mean", justify="right")
    table.add_column("Std Dev", justify="right")
    for spread in summary.criterion_stability:
        value = "n/a" if spread.insufficient_data else f"{spread.value:.2f}"
        if spread.flagged:
            value = f"[yellow]{value}[/yellow]"
        table.add_row(spread.name, f"{spread.mean:.1f}", value)
    console.print(table)

    if summary.high_risk_decisions:
        console.print("\n[bold]High-Risk Grading Decisions to Review[/bold]")
        for decision in summary.high_risk_decisions:
            console.print(
                f"  [red]⚠[/red] {decision.criterion_name} on {decision.submission_id}: "
                f"score {decision.score:g}, {decision.status.value}\n"
                f"    [dim]\"{decision.explanation}\"[/dim]"
            )
    else:
        console.print("\n[green]No high-risk decisions flagged.[/green]")


if __name__ == "__main__":
    app()
