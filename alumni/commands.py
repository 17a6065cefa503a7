"""Flask CLI commands (run with `flask --app alumni <command>`)."""

import click

from alumni import db


def register_commands(app):

    @app.cli.command('seed-demo')
    def seed_demo_command():
        """Create tables and add demo users and events."""
        from alumni.seed_demo import seed_demo
        db.create_all()
        result = seed_demo()
        click.echo(f"Added {result['users_added']} user(s) and {result['events_added']} event(s)")

    @app.cli.command('issue-token')
    @click.argument('email')
    def issue_token_command(email):
        """Print a development bearer token for a user."""
        from alumni.auth import issue_token
        from alumni.models import User
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            raise click.ClickException(f'No user with email {email}')
        click.echo(issue_token(user))

    @app.cli.command('reconcile-counts')
    def reconcile_counts_command():
        """Recompute registered_count for every event."""
        from alumni.services.registration_service import reconcile_registered_counts
        corrected = reconcile_registered_counts()
        for row in corrected:
            click.echo(f"Event {row['event_id']}: {row['stored']} -> {row['actual']}")
        click.echo(f"{len(corrected)} event(s) corrected")

    @app.cli.command('send-reminders')
    @click.option('--hours', default=24, show_default=True, help='Remind for events starting within this many hours.')
    @click.option('--dry-run', is_flag=True, help="Log emails without sending them.")
    def send_reminders_command(hours, dry_run):
        """Email attendees of upcoming events (run from cron)."""
        from alumni.services.reminder_jobs import send_upcoming_reminders
        result = send_upcoming_reminders(hours=hours, dry_run=dry_run)
        click.echo(result['message'])
