"""promptgate CLI — operator tooling over the moderation engine."""

from __future__ import annotations

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from promptgate import __version__
from promptgate.errors import (
    ConfigError,
    CounterReadFailure,
    PolicyViolation,
    RestrictionError,
)
from promptgate.moderation.models import Submission
from promptgate.restrictions.models import RestrictionStatus

console = Console()
err_console = Console(stderr=True)


def _setup_logging(verbose: bool) -> None:
    root = logging.getLogger()
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(RichHandler(console=err_console, show_path=False))
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _engine(ctx: click.Context):
    """Build the engine on first use and close it with the context."""
    obj = ctx.find_root().obj
    if "engine" not in obj:
        from promptgate.config import load_settings
        from promptgate.engine import build_engine

        try:
            settings = load_settings(obj["config"])
        except ConfigError as e:
            err_console.print(f"[red]Configuration error:[/] {escape(str(e))}")
            ctx.exit(2)
        if obj["data_dir"]:
            settings.data_dir = obj["data_dir"]
        engine = build_engine(settings)
        ctx.find_root().call_on_close(engine.close)
        obj["engine"] = engine
    return obj["engine"]


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", default=None, type=click.Path(dir_okay=False),
              help="YAML settings file")
@click.option("--data-dir", default=None, type=click.Path(file_okay=False),
              help="Override the data directory")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, data_dir: str | None, verbose: bool):
    """promptgate — content-safety decisions for generation prompts.

    Audit prompts, inspect violation counts, review restrictions and
    curate the allowlist.
    """
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config_path
    ctx.obj["data_dir"] = Path(data_dir).expanduser() if data_dir else None


# ── Audit ────────────────────────────────────────────────────────────


@main.command()
@click.argument("prompt")
@click.option("--user", "-u", "user_id", required=True, help="Submitting user ID")
@click.option("--negative", "-n", default="", help="Negative prompt")
@click.option("--strict", is_flag=True, help="Audit for the SFW-only domain")
@click.option("--moderator", is_flag=True, help="Submitter is exempt from automatic muting")
@click.option("--image-id", default=None, help="Source image when the prompt is a remix")
@click.pass_context
def audit(ctx, prompt: str, user_id: str, negative: str, strict: bool, moderator: bool, image_id: str | None):
    """Audit PROMPT as USER would submit it (counts and enforces).

    Exits 1 when the prompt is blocked and 2 when the violation count
    cannot be read.
    """
    engine = _engine(ctx)
    submission = Submission(
        prompt=prompt,
        user_id=user_id,
        negative_prompt=negative,
        strict=strict,
        moderator=moderator,
        image_id=image_id,
    )
    try:
        engine.auditor.audit(submission)
    except PolicyViolation as e:
        console.print(f"[red]Blocked[/] ({e.source.value}): {escape(e.message)}")
        ctx.exit(1)
    except CounterReadFailure as e:
        err_console.print(f"[red]Not admitted:[/] {escape(str(e))}")
        ctx.exit(2)
    console.print("[green]Admitted[/]")


@main.command()
@click.argument("prompt")
@click.option("--negative", "-n", default="", help="Negative prompt")
@click.pass_context
def debug(ctx, prompt: str, negative: str):
    """Show every local check run against PROMPT, without side effects."""
    engine = _engine(ctx)
    result = engine.patterns.explain(prompt, negative)

    table = Table(title="Pattern checks")
    table.add_column("Check", style="cyan")
    table.add_column("Target", style="dim")
    table.add_column("Matched", justify="center")
    table.add_column("Text")
    table.add_column("Message")

    for row in result.matches:
        table.add_row(
            row.check,
            row.target,
            "[red]yes[/]" if row.matched else "[green]no[/]",
            escape(row.matched_text),
            escape(row.message),
        )
    console.print(table)

    if result.would_block:
        console.print(f"\n[red]Would block:[/] {escape(result.block_reason)}")
    else:
        console.print("\n[green]Would admit[/]")


# ── Violations ───────────────────────────────────────────────────────


@main.group()
def violations():
    """Inspect and reset rolling violation counts."""


@violations.command("count")
@click.argument("user_id")
@click.pass_context
def violations_count(ctx, user_id: str):
    """Show USER_ID's violations in the current window."""
    engine = _engine(ctx)
    try:
        count = engine.counter.count(user_id)
    except CounterReadFailure as e:
        err_console.print(f"[red]{escape(str(e))}[/]")
        ctx.exit(2)
    tier = engine.escalation.tier_for(count)
    console.print(f"{user_id}: [bold]{count}[/] violation(s), tier [cyan]{tier.value}[/]")


@violations.command("reset")
@click.argument("user_id")
@click.pass_context
def violations_reset(ctx, user_id: str):
    """Reset USER_ID's violation count to zero."""
    engine = _engine(ctx)
    engine.counter.reset(user_id)
    console.print(f"[green]Reset[/] violation count for {user_id}")


# ── Restrictions ─────────────────────────────────────────────────────


@main.group()
def restrictions():
    """Review generation restrictions."""


@restrictions.command("list")
@click.option("--status", type=click.Choice([s.value for s in RestrictionStatus]), default=None)
@click.option("--user", "user_id", default=None, help="Filter by user ID")
@click.option("--username", default=None, help="Filter by username (substring)")
@click.option("--page", default=1, type=int)
@click.option("--limit", default=20, type=int)
@click.pass_context
def restrictions_list(ctx, status: str | None, user_id: str | None, username: str | None, page: int, limit: int):
    """List restrictions, newest first."""
    engine = _engine(ctx)
    result = engine.workflow.list_restrictions(
        status=RestrictionStatus(status) if status else None,
        user_id=user_id,
        username=username,
        page=page,
        limit=limit,
    )
    if not result.items:
        console.print("[yellow]No restrictions found.[/]")
        return

    table = Table(title=f"Restrictions (page {result.page}, {result.total_count} total)")
    table.add_column("ID", style="dim")
    table.add_column("User", style="cyan")
    table.add_column("Status")
    table.add_column("Prompts", justify="right")
    table.add_column("Triggers")
    table.add_column("Created")

    status_style = {"Pending": "yellow", "Upheld": "red", "Overturned": "green"}
    for r in result.items:
        style = status_style.get(r.status.value, "white")
        table.add_row(
            r.id,
            r.user_id,
            f"[{style}]{r.status.value}[/]",
            str(len(r.blocked_prompts)),
            escape(", ".join(r.triggers)[:60]),
            r.created_at[:19],
        )
    console.print(table)


@restrictions.command("show")
@click.argument("restriction_id")
@click.pass_context
def restrictions_show(ctx, restriction_id: str):
    """Show one restriction with its blocked prompts."""
    engine = _engine(ctx)
    try:
        r = engine.workflow.get_restriction(restriction_id)
    except RestrictionError as e:
        err_console.print(f"[red]{escape(str(e))}[/]")
        ctx.exit(1)

    lines = [
        f"User:     {r.user_id}",
        f"Status:   {r.status.value}",
        f"Created:  {r.created_at}",
        f"Triggers: {', '.join(r.triggers)}",
    ]
    if r.resolved_at:
        lines.append(f"Resolved: {r.resolved_at} by {r.resolved_by}")
        if r.resolved_message:
            lines.append(f"Message:  {r.resolved_message}")
    if r.user_message:
        lines.append(f"User says: {r.user_message}")
    console.print(Panel(escape("\n".join(lines)), title=f"Restriction {r.id}"))

    for i, bp in enumerate(r.blocked_prompts, 1):
        console.print(f"\n[bold]#{i}[/] [dim]{bp.time} {bp.source} {bp.category}[/]")
        console.print(f"  prompt:   {escape(bp.prompt)}")
        if bp.negative_prompt:
            console.print(f"  negative: {escape(bp.negative_prompt)}")
        if bp.matched_word:
            console.print(f"  matched:  {escape(bp.matched_word)}")


@restrictions.command("resolve")
@click.argument("restriction_id")
@click.option("--decision", "-d", required=True,
              type=click.Choice([RestrictionStatus.upheld.value, RestrictionStatus.overturned.value]))
@click.option("--moderator", "-m", "moderator_id", required=True, help="Resolving moderator ID")
@click.option("--message", default="", help="Message shown to the user")
@click.pass_context
def restrictions_resolve(ctx, restriction_id: str, decision: str, moderator_id: str, message: str):
    """Uphold or overturn a Pending restriction."""
    engine = _engine(ctx)
    try:
        r = engine.workflow.resolve(restriction_id, RestrictionStatus(decision), moderator_id, message)
    except RestrictionError as e:
        err_console.print(f"[red]{escape(str(e))}[/]")
        ctx.exit(1)
    console.print(f"[green]Restriction {r.id} {r.status.value}[/] for user {r.user_id}")


# ── Allowlist ────────────────────────────────────────────────────────


@main.group()
def allowlist():
    """Curate triggers that should no longer block prompts."""


@allowlist.command("add")
@click.argument("trigger")
@click.argument("category")
@click.option("--moderator", "-m", "moderator_id", required=True, help="Moderator ID")
@click.option("--reason", default="", help="Why the trigger is benign")
@click.option("--restriction", "restriction_id", default=None, help="Restriction that prompted this")
@click.pass_context
def allowlist_add(ctx, trigger: str, category: str, moderator_id: str, reason: str, restriction_id: str | None):
    """Allow TRIGGER in CATEGORY."""
    engine = _engine(ctx)
    entry = engine.workflow.add_to_allowlist(trigger, category, moderator_id, reason, restriction_id)
    console.print(f"[green]Allowed[/] '{escape(entry.trigger)}' ({entry.category})")


@allowlist.command("remove")
@click.argument("trigger")
@click.argument("category")
@click.option("--moderator", "-m", "moderator_id", required=True, help="Moderator ID")
@click.pass_context
def allowlist_remove(ctx, trigger: str, category: str, moderator_id: str):
    """Stop allowing TRIGGER in CATEGORY."""
    engine = _engine(ctx)
    if engine.workflow.remove_from_allowlist(trigger, category, moderator_id):
        console.print(f"[green]Removed[/] '{escape(trigger)}' ({category})")
    else:
        console.print(f"[yellow]Not on the allowlist:[/] '{escape(trigger)}' ({category})")


@allowlist.command("list")
@click.pass_context
def allowlist_list(ctx):
    """List allowlist entries."""
    engine = _engine(ctx)
    entries = engine.allowlist_store.list_entries()
    if not entries:
        console.print("[yellow]Allowlist is empty.[/]")
        return

    table = Table(title=f"Allowlist ({len(entries)} entries)")
    table.add_column("Trigger", style="cyan")
    table.add_column("Category")
    table.add_column("Added by", style="dim")
    table.add_column("Reason")
    table.add_column("Updated")
    for e in entries:
        table.add_row(escape(e.trigger), e.category, e.added_by, escape(e.reason), e.updated_at[:19])
    console.print(table)


if __name__ == "__main__":
    main()
