"""CLI tools for Ever Ease administration."""

import uuid
from datetime import datetime, timezone

import click
from sqlalchemy.exc import SQLAlchemyError

from everease.db.session import SessionLocal
from everease.services import executor_service, invitation_service, trigger_service


@click.group()
def cli():
    """Ever Ease CLI tools."""
    pass


@cli.command("purge-invitations")
@click.option("--dry-run", is_flag=True, help="Only count expired invitations")
def purge_invitations(dry_run: bool):
    """
    Delete expired executor invitations.

    Example:
        python -m everease.cli purge-invitations
    """
    from everease.db.models import ExecutorInvitation

    db = SessionLocal()
    try:
        now = datetime.now(timezone.utc)
        if dry_run:
            count = (
                db.query(ExecutorInvitation)
                .filter(ExecutorInvitation.expires_at < now)
                .count()
            )
            click.echo(f"{count} expired invitation(s) would be deleted")
            return
        count = invitation_service.purge_expired_invitations(db, now)
        click.echo(f"✓ Deleted {count} expired invitation(s)")
    except SQLAlchemyError as e:
        db.rollback()
        raise click.ClickException(f"Database error: {e}")
    finally:
        db.close()


@cli.command("show-access")
@click.option("--planner-id", required=True, help="Planner (profile) id")
def show_access(planner_id: str):
    """Print every executor of a planner with its access state."""
    try:
        planner_uuid = uuid.UUID(planner_id)
    except ValueError:
        raise click.BadParameter("must be a UUID", param_hint="--planner-id")

    db = SessionLocal()
    try:
        executors = executor_service.list_executors(db, planner_uuid)
        if not executors:
            click.echo("No executors")
            return
        for executor in executors:
            state = trigger_service.get_access_state(db, executor)
            click.echo(f"{executor.id}  {executor.email:<40} {executor.status:<8} {state.value}")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
