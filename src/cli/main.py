"""
Typer CLI for the vocab mastery engine.

Commands:
    vme db init                   - Initialize database tables
    vme concepts add              - Add concepts to the catalog
    vme concepts list             - List catalog concepts
    vme mastery record            - Record one exposure
    vme mastery show              - Mastery record for one concept
    vme mastery due               - Concepts due for review
    vme mastery weak              - Weakest concepts
    vme mastery stats             - Mastery statistics for a learner
    vme mastery recommend         - Recommended concepts for the next session
    vme content policy            - Preview a learner's generation policy
    vme content request           - Request exercise content (cached generation)
    vme feedback reject           - Reject content for a concept
    vme feedback approve          - Approve content for a concept
    vme feedback hints            - Show prompt hints for a concept
    vme feedback summary          - Rejection counts per concept/category
    vme cache stats               - Cache statistics
    vme cache types               - Cache totals per exercise type
    vme cache popular             - Most used cache entries
    vme cache clear               - Remove every cache entry
    vme maintenance sweep         - Purge expired cache rows and stale mastery rows

Usage:
    vme --help
    vme mastery record learner-1 el-pico --correct --time-ms 2300
    vme content request learner-1 --type term_matching
    vme feedback reject el-pico --note "[INCORRECT_FEATURE] wrong body part"
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import TypeVar

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from config import get_settings
from src.core.errors import EngineError
from src.core.logging_config import configure_logging

T = TypeVar("T")

app = typer.Typer(
    help="vocab-mastery-engine CLI: mastery tracking, adaptive generation and feedback",
    no_args_is_help=True,
)

console = Console()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Adaptive vocabulary mastery engine."""
    configure_logging(get_settings(), level="DEBUG" if verbose else None)


# ========================================
# Context Builder (Dependency Injection)
# ========================================


class CLIContext:
    """
    Dependency injection container for CLI commands.

    Lazily builds the engine so commands like ``--help`` never touch the
    database.
    """

    def __init__(self, engine=None):
        self.settings = get_settings()
        self._engine = engine

    @property
    def engine(self):
        """Lazy load MasteryEngine."""
        if self._engine is None:
            from src.engine.factory import build_engine

            self._engine = build_engine(self.settings)
        return self._engine


def _build_context() -> CLIContext:
    """Build CLI context with dependency injection."""
    return CLIContext()


def _run(action: Callable[[], T]) -> T:
    """Run an engine call, turning engine errors into a clean exit."""
    try:
        return action()
    except EngineError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1) from e


def _fmt_time(value: str | None) -> str:
    return value[:16].replace("T", " ") if value else "-"


def _records_table(title: str, records) -> Table:
    table = Table(title=title, show_header=True)
    table.add_column("Concept", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Tier", justify="center")
    table.add_column("Seen", justify="right")
    table.add_column("Correct", justify="right", style="green")
    table.add_column("Wrong", justify="right", style="red")
    table.add_column("Streak", justify="right")
    table.add_column("Next review", style="dim")
    for record in records:
        data = record.to_dict()
        table.add_row(
            record.concept_id,
            f"{record.mastery_score:.2f}",
            str(record.confidence_tier),
            str(record.exposure_count),
            str(record.correct_count),
            str(record.incorrect_count),
            str(record.last_outcome_streak),
            _fmt_time(data["next_review_at"]),
        )
    return table


# ========================================
# DB COMMANDS
# ========================================

db_app = typer.Typer(help="Database management")
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Create all engine tables."""
    from src.db.database import init_db

    init_db()
    rprint("[bold green]✓ Database tables initialized[/bold green]")


# ========================================
# CONCEPT COMMANDS
# ========================================

concepts_app = typer.Typer(help="Concept catalog")
app.add_typer(concepts_app, name="concepts")


@concepts_app.command("add")
def concepts_add(
    concept_ids: list[str] = typer.Argument(..., help="Concept ids to add"),
    category: str | None = typer.Option(None, "--category", help="Category for all added concepts"),
) -> None:
    """
    Add concepts to the catalog (existing ids are skipped).

    Examples:
        vme concepts add el-pico las-alas la-cola --category anatomy
    """
    ctx = _build_context()
    added = _run(
        lambda: ctx.engine.mastery_store.add_concepts(
            {"id": concept_id, "category": category} for concept_id in concept_ids
        )
    )
    rprint(f"[green]✓[/green] Added {added} concepts ({len(concept_ids) - added} already in catalog)")


@concepts_app.command("list")
def concepts_list() -> None:
    """List catalog concepts."""
    ctx = _build_context()
    concepts = _run(ctx.engine.mastery_store.catalog_concepts)

    table = Table(title=f"Concept Catalog ({len(concepts)})", show_header=True)
    table.add_column("Id", style="cyan")
    table.add_column("Term")
    table.add_column("Translation")
    table.add_column("Category", style="dim")
    table.add_column("Level", justify="center")
    for concept in concepts:
        table.add_row(
            concept["id"],
            concept["term"] or "-",
            concept["translation"] or "-",
            concept["category"] or "-",
            str(concept["difficulty_level"]),
        )
    console.print(table)


# ========================================
# MASTERY COMMANDS
# ========================================

mastery_app = typer.Typer(help="Mastery tracking and review selection")
app.add_typer(mastery_app, name="mastery")


@mastery_app.command("record")
def mastery_record(
    learner_id: str = typer.Argument(..., help="Learner id"),
    concept_id: str = typer.Argument(..., help="Concept id"),
    correct: bool = typer.Option(..., "--correct/--incorrect", help="Outcome of the exercise"),
    time_ms: int = typer.Option(0, "--time-ms", help="Response time in milliseconds"),
) -> None:
    """Record one exposure and show the updated mastery."""
    ctx = _build_context()
    record = _run(lambda: ctx.engine.record_exposure(learner_id, concept_id, correct, time_ms))

    mark = "[green]✓[/green]" if correct else "[red]✗[/red]"
    rprint(f"\n{mark} {learner_id} / {concept_id}")
    rprint(f"  Mastery: {record.mastery_score:.3f} (tier {record.confidence_tier})")
    rprint(f"  Exposures: {record.exposure_count} ({record.correct_count} correct, {record.incorrect_count} wrong)")
    rprint(f"  Streak: {record.last_outcome_streak}")
    rprint(f"  Next review: {_fmt_time(record.to_dict()['next_review_at'])}")


@mastery_app.command("show")
def mastery_show(
    learner_id: str = typer.Argument(..., help="Learner id"),
    concept_id: str = typer.Argument(..., help="Concept id"),
) -> None:
    """Show a learner's mastery record for one concept."""
    ctx = _build_context()
    record = _run(lambda: ctx.engine.get_mastery(learner_id, concept_id))
    console.print(_records_table(f"Mastery: {learner_id}", [record]))


@mastery_app.command("due")
def mastery_due(
    learner_id: str = typer.Argument(..., help="Learner id"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum concepts"),
) -> None:
    """Show concepts due for review, soonest first."""
    ctx = _build_context()
    records = _run(lambda: ctx.engine.get_due_for_review(learner_id, limit))
    if not records:
        rprint("[dim]Nothing due for review.[/dim]")
        return
    console.print(_records_table(f"Due for Review: {learner_id}", records))


@mastery_app.command("weak")
def mastery_weak(
    learner_id: str = typer.Argument(..., help="Learner id"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum concepts"),
) -> None:
    """Show the weakest concepts."""
    ctx = _build_context()
    records = _run(lambda: ctx.engine.get_weak_concepts(learner_id, limit))
    if not records:
        rprint("[dim]No weak concepts.[/dim]")
        return
    console.print(_records_table(f"Weak Concepts: {learner_id}", records))


@mastery_app.command("stats")
def mastery_stats(learner_id: str = typer.Argument(..., help="Learner id")) -> None:
    """Show mastery statistics."""
    ctx = _build_context()
    stats = _run(lambda: ctx.engine.get_mastery_stats(learner_id))

    table = Table(title=f"Mastery Stats: {learner_id}", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Concepts seen", str(stats.total_concepts))
    table.add_row("Average mastery", f"{stats.avg_mastery:.3f}")
    table.add_row("Weak (< 0.7)", str(stats.weak_count))
    table.add_row("Mastered (>= 0.8)", str(stats.mastered_count))
    table.add_row("Due now", str(stats.due_count))
    table.add_section()
    for tier, count in sorted(stats.tier_counts.items()):
        table.add_row(f"Tier {tier}", str(count))
    console.print(table)


@mastery_app.command("recommend")
def mastery_recommend(
    learner_id: str = typer.Argument(..., help="Learner id"),
    count: int = typer.Option(5, "--count", "-n", help="Number of recommendations"),
    include_new: bool = typer.Option(True, "--new/--no-new", help="Include unexplored concepts"),
) -> None:
    """Recommend concepts for the next session."""
    ctx = _build_context()
    recommendations = _run(lambda: ctx.engine.get_recommended_concepts(learner_id, count, include_new))

    table = Table(title=f"Recommended: {learner_id}", show_header=True)
    table.add_column("Concept", style="cyan")
    table.add_column("Reason")
    table.add_column("Priority", justify="right")
    table.add_column("Score", justify="right")
    for rec in recommendations:
        table.add_row(
            rec.concept_id,
            rec.reason,
            str(rec.priority),
            f"{rec.mastery_score:.2f}" if rec.mastery_score is not None else "-",
        )
    console.print(table)


# ========================================
# CONTENT COMMANDS
# ========================================

content_app = typer.Typer(help="Adaptive content generation")
app.add_typer(content_app, name="content")


@content_app.command("policy")
def content_policy(
    learner_id: str = typer.Argument(..., help="Learner id"),
    exercise_type: str | None = typer.Option(None, "--type", "-t", help="Exercise type"),
) -> None:
    """Preview the generation policy for a learner."""
    ctx = _build_context()
    policy = _run(lambda: ctx.engine.build_policy(learner_id, exercise_type))

    rprint(f"\n[bold cyan]Generation Policy: {learner_id}[/bold cyan]")
    rprint(f"  Type: {policy.to_dict()['exercise_type']}")
    rprint(f"  Level: {policy.to_dict()['level']}  Difficulty: {policy.difficulty}/5  Streak: {policy.streak}")
    rprint(f"  Weak: {', '.join(policy.weak_concepts) or 'none'}")
    rprint(f"  Mastered: {', '.join(policy.mastered_concepts) or 'none'}")
    rprint(f"  Due: {', '.join(policy.due_concepts) or 'none'}")
    rprint(f"  New: {', '.join(policy.new_concepts) or 'none'}")
    for hint in policy.hints:
        rprint(f"  [yellow]Hint:[/yellow] {hint}")
    rprint(f"  Cache key: {ctx.engine.cache.key_for(policy)}")


@content_app.command("request")
def content_request(
    learner_id: str = typer.Argument(..., help="Learner id"),
    exercise_type: str | None = typer.Option(None, "--type", "-t", help="Exercise type"),
) -> None:
    """Request exercise content (served from cache when possible)."""
    ctx = _build_context()

    async def _request():
        try:
            return await ctx.engine.request_content(learner_id, exercise_type)
        finally:
            await ctx.engine.aclose()

    content = _run(lambda: asyncio.run(_request()))
    source = "[green]cache hit[/green]" if content.cache_hit else "[yellow]generated[/yellow]"
    rprint(f"\n{source} key={content.cache_key} uses={content.usage_count}")
    console.print_json(json.dumps(content.payload))


# ========================================
# FEEDBACK COMMANDS
# ========================================

feedback_app = typer.Typer(help="Reviewer feedback")
app.add_typer(feedback_app, name="feedback")


@feedback_app.command("reject")
def feedback_reject(
    concept_id: str = typer.Argument(..., help="Concept id"),
    category: str | None = typer.Option(None, "--category", "-c", help="Rejection category"),
    note: str | None = typer.Option(None, "--note", help="Reviewer note (category inferred when omitted)"),
    reviewer: str | None = typer.Option(None, "--reviewer", help="Reviewer id"),
) -> None:
    """Reject generated content for a concept."""
    ctx = _build_context()
    pattern = _run(lambda: ctx.engine.apply_rejection(concept_id, category, note, reviewer))
    rprint(f"[yellow]✗[/yellow] Rejected {concept_id}: confidence now {pattern.average_confidence:.2f}")
    for cat, count in sorted(pattern.rejection_counts.items(), key=lambda item: -item[1]):
        rprint(f"  {cat}: {count}")


@feedback_app.command("approve")
def feedback_approve(
    concept_id: str = typer.Argument(..., help="Concept id"),
    reviewer: str | None = typer.Option(None, "--reviewer", help="Reviewer id"),
) -> None:
    """Approve generated content for a concept."""
    ctx = _build_context()
    pattern = _run(lambda: ctx.engine.apply_approval(concept_id, reviewer))
    rprint(f"[green]✓[/green] Approved {concept_id}: confidence now {pattern.average_confidence:.2f}")


@feedback_app.command("hints")
def feedback_hints(concept_id: str = typer.Argument(..., help="Concept id")) -> None:
    """Show prompt hints derived from repeated rejections."""
    ctx = _build_context()
    hints = _run(lambda: ctx.engine.enhancement_hints(concept_id))
    if not hints:
        rprint(f"[dim]No hints for {concept_id}.[/dim]")
        return
    for hint in hints:
        rprint(f"  • {hint}")


@feedback_app.command("summary")
def feedback_summary(
    concept_id: str | None = typer.Option(None, "--concept", help="Limit to one concept"),
) -> None:
    """Rejection counts per concept and category."""
    ctx = _build_context()
    rows = _run(lambda: ctx.engine.rejection_summary(concept_id))

    table = Table(title="Rejection Summary", show_header=True)
    table.add_column("Concept", style="cyan")
    table.add_column("Category")
    table.add_column("Count", justify="right", style="red")
    table.add_column("Last", style="dim")
    for row in rows:
        table.add_row(row["concept_id"], row["category"], str(row["count"]), _fmt_time(row["last_rejected_at"]))
    console.print(table)


# ========================================
# CACHE COMMANDS
# ========================================

cache_app = typer.Typer(help="Generation cache")
app.add_typer(cache_app, name="cache")


@cache_app.command("stats")
def cache_stats() -> None:
    """Show cache statistics."""
    ctx = _build_context()
    stats = _run(ctx.engine.cache_stats)

    table = Table(title="Generation Cache", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in stats.items():
        table.add_row(key.replace("_", " "), f"{value:.1%}" if key == "hit_rate" else str(value))
    console.print(table)


@cache_app.command("types")
def cache_types() -> None:
    """Show cache totals per exercise type."""
    ctx = _build_context()
    rows = _run(ctx.engine.cache_stats_by_type)

    table = Table(title="Cache by Exercise Type", show_header=True)
    table.add_column("Type", style="cyan")
    table.add_column("Entries", justify="right")
    table.add_column("Active", justify="right", style="green")
    table.add_column("Uses", justify="right")
    table.add_column("Avg uses", justify="right")
    table.add_column("Avg gen ms", justify="right", style="dim")
    for row in rows:
        table.add_row(
            row["exercise_type"],
            str(row["total_entries"]),
            str(row["active_entries"]),
            str(row["total_usage"]),
            f"{row['avg_usage_per_entry']:.2f}",
            "-" if row["avg_generation_time_ms"] is None else f"{row['avg_generation_time_ms']:.0f}",
        )
    console.print(table)


@cache_app.command("popular")
def cache_popular(limit: int = typer.Option(10, "--limit", "-n", help="Maximum entries")) -> None:
    """Show the most used cache entries."""
    ctx = _build_context()
    entries = _run(lambda: ctx.engine.popular_cache_entries(limit))

    table = Table(title="Popular Cache Entries", show_header=True)
    table.add_column("Key", style="cyan")
    table.add_column("Type")
    table.add_column("Level")
    table.add_column("Diff", justify="right")
    table.add_column("Uses", justify="right", style="green")
    table.add_column("Expires", style="dim")
    for entry in entries:
        table.add_row(
            entry["cache_key"][:12],
            entry["exercise_type"],
            entry["level"],
            str(entry["difficulty"]),
            str(entry["usage_count"]),
            _fmt_time(entry["expires_at"]),
        )
    console.print(table)


@cache_app.command("clear")
def cache_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Remove every cache entry."""
    if not yes and not typer.confirm("Remove all cached content?"):
        raise typer.Abort()
    ctx = _build_context()
    removed = _run(ctx.engine.cache.clear)
    rprint(f"[green]✓[/green] Removed {removed} cache entries")


# ========================================
# MAINTENANCE COMMANDS
# ========================================

maintenance_app = typer.Typer(help="Periodic maintenance")
app.add_typer(maintenance_app, name="maintenance")


@maintenance_app.command("sweep")
def maintenance_sweep() -> None:
    """Purge expired cache entries and prune stale zero-exposure mastery rows."""
    ctx = _build_context()
    result = _run(ctx.engine.sweep)
    rprint("[bold green]✓ Sweep complete[/bold green]")
    rprint(f"  Cache entries purged: {result['cache_purged']}")
    rprint(f"  Mastery rows pruned: {result['mastery_pruned']}")
    logger.info(f"Maintenance sweep: {result}")


def main() -> None:
    """Entry point for the ``vme`` console script."""
    app()


if __name__ == "__main__":
    main()
