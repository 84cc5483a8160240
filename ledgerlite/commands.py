"""Maintenance commands: ``flask seed-accounts``, ``flask mark-overdue``, ``flask purge-sessions``."""
from datetime import datetime

import click

from ledgerlite import db
from ledgerlite.chart_of_accounts import seed_accounts, seed_personal_accounts
from ledgerlite.invoices import mark_overdue
from ledgerlite.models import AuthSession, Company, OtpCode


def register_commands(app):
    @app.cli.command("seed-accounts")
    @click.argument("company_id", type=int)
    def seed_accounts_command(company_id):
        """Add any missing default accounts to a company."""
        company = db.session.get(Company, company_id)
        if not company:
            raise click.ClickException(f"Company {company_id} not found")
        if company.is_personal:
            created = seed_personal_accounts(company.id)
        else:
            created = seed_accounts(company.id)
        db.session.commit()
        click.echo(f"Seeded {created} accounts for {company.name}")

    @app.cli.command("mark-overdue")
    def mark_overdue_command():
        """Flag sent invoices past their due date as overdue."""
        changed = mark_overdue()
        db.session.commit()
        click.echo(f"Marked {changed} invoices overdue")

    @app.cli.command("purge-sessions")
    def purge_sessions_command():
        """Delete expired login sessions and one-time codes."""
        now = datetime.utcnow()
        sessions = AuthSession.query.filter(AuthSession.expires_at <= now).delete(synchronize_session=False)
        codes = OtpCode.query.filter(OtpCode.expires_at <= now).delete(synchronize_session=False)
        db.session.commit()
        click.echo(f"Removed {sessions} sessions and {codes} codes")
