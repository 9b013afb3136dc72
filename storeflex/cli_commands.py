"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask create-owner: Register a store with its owner
"""

import click

from storeflex.database import create_all, get_session
from storeflex.exceptions import StoreflexError


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create the database tables (existing tables are left alone)."""
        create_all()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('create-owner')
    @click.option('--business-name', prompt=True, help='Store name')
    @click.option('--full-name', prompt=True, help='Owner full name')
    @click.option('--email', prompt=True, help='Owner email address')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Owner password')
    def create_owner(business_name, full_name, email, password):
        """Create a store and its OWNER user."""
        from storeflex.services.account_service import register_store

        try:
            user, tenant = register_store(get_session(), {
                'business_name': business_name,
                'full_name': full_name,
                'email': email,
                'password': password,
            })
        except StoreflexError as e:
            click.echo(click.style(f'Could not create store: {e.message}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style('\nStore created.', fg='green', bold=True))
        click.echo(f'   Store: {tenant.name} ({tenant.slug}, id {tenant.id})')
        click.echo(f'   Owner: {user.email}')
