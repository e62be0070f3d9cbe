"""CLI entrypoint for aion."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(__version__, prog_name="aion")
@click.option(
    "--root",
    "-r",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Project root (defaults to the current directory)",
)
@click.option("--verbose", is_flag=True, help="Log at DEBUG level")
@click.pass_context
def cli(ctx: click.Context, root: Path | None, verbose: bool) -> None:
    """aion - micro-commit safety protocol and persona handover state machine.

    Every file change made by a persona is validated, snapshotted, applied
    and recorded; control passes between personas along a fixed graph.
    """
    ctx.ensure_object(dict)
    _configure_logging(verbose)
    ctx.obj["root"] = (root or Path.cwd()).resolve()


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the current persona and commit statistics."""
    from .commands.commit_cmd import run_status

    sys.exit(run_status(ctx.obj["root"]))


@cli.command()
@click.option("--persona", "-p", default=None, help="Only commits by this persona")
@click.option("--limit", "-n", type=int, default=20, show_default=True, help="Most recent N commits")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def history(ctx: click.Context, persona: str | None, limit: int, output_json: bool) -> None:
    """List recent micro-commits, oldest first."""
    from .commands.commit_cmd import run_history

    sys.exit(run_history(ctx.obj["root"], persona=persona, limit=limit, output_json=output_json))


@cli.command()
@click.argument("changeset", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--persona", "-p", required=True, help="Persona making the change")
@click.option("--step", "step_id", required=True, help="Workflow step id")
@click.option("--description", "-m", required=True, help="What the change does")
@click.pass_context
def commit(ctx: click.Context, changeset: Path, persona: str, step_id: str, description: str) -> None:
    """Apply a change set as one micro-commit.

    CHANGESET is a JSON file: {"files": [{"path", "action", "content"}]}.

    Examples:

        aion commit changes.json --persona Developer --step S-12 -m "Add parser"
    """
    from .commands.commit_cmd import run_commit

    exit_code = run_commit(
        ctx.obj["root"],
        changeset,
        persona=persona,
        step_id=step_id,
        description=description,
    )
    sys.exit(exit_code)


@cli.command()
@click.argument("commit_id")
@click.pass_context
def rollback(ctx: click.Context, commit_id: str) -> None:
    """Restore the files a commit changed to their prior state."""
    from .commands.commit_cmd import run_rollback

    sys.exit(run_rollback(ctx.obj["root"], commit_id))


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def reconcile(ctx: click.Context, output_json: bool) -> None:
    """Check for snapshots left behind by interrupted commits.

    Exits 2 when files were changed without a recorded commit.
    """
    from .commands.commit_cmd import run_reconcile

    sys.exit(run_reconcile(ctx.obj["root"], output_json=output_json))


@cli.command()
@click.argument("from_persona")
@click.argument("to_persona")
@click.option("--artifact", "-a", "artifact_types", multiple=True, help="Artifact type handed over (repeatable)")
@click.option("--notes", default="", help="Free-form notes")
@click.pass_context
def handover(
    ctx: click.Context,
    from_persona: str,
    to_persona: str,
    artifact_types: tuple[str, ...],
    notes: str,
) -> None:
    """Pass control from one persona to another.

    Examples:

        aion handover PM Architect -a PRD --notes "Scope frozen"
    """
    from .commands.handover_cmd import run_handover

    exit_code = run_handover(
        ctx.obj["root"],
        from_persona,
        to_persona,
        artifact_types=artifact_types,
        notes=notes,
    )
    sys.exit(exit_code)


@cli.command()
@click.option("--limit", "-n", type=int, default=10, show_default=True, help="Most recent N handovers")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def handovers(ctx: click.Context, limit: int, output_json: bool) -> None:
    """List recent handovers."""
    from .commands.handover_cmd import run_handovers

    sys.exit(run_handovers(ctx.obj["root"], limit=limit, output_json=output_json))


@cli.command()
@click.option("--mermaid", is_flag=True, help="Print a mermaid stateDiagram instead of a table")
@click.pass_context
def transitions(ctx: click.Context, mermaid: bool) -> None:
    """Show the persona transition graph."""
    from .commands.handover_cmd import run_transitions

    sys.exit(run_transitions(ctx.obj["root"], mermaid=mermaid))


@cli.command()
@click.option("--out", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Write output to a file")
@click.option("--commits", is_flag=True, help="Render the commit log instead of the handover log")
@click.pass_context
def render(ctx: click.Context, out: Path | None, commits: bool) -> None:
    """Render the markdown projection of the handover (or commit) log."""
    from .commands.handover_cmd import run_render

    sys.exit(run_render(ctx.obj["root"], out=out, commits=commits))


@cli.command()
@click.option("--yes", is_flag=True, help="Skip confirmation prompts")
@click.pass_context
def reset(ctx: click.Context, yes: bool) -> None:
    """Clear handover history and return to Init.

    The commit ledger and snapshots are kept.
    """
    from .commands.handover_cmd import run_reset

    if not yes:
        click.confirm("Reset the persona state machine? This clears all handover history.", abort=True)
        click.confirm("Are you absolutely sure?", abort=True)
    sys.exit(run_reset(ctx.obj["root"]))


if __name__ == "__main__":
    cli()
