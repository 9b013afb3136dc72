"""
Integration tests for the Flask CLI commands.
"""

from storeflex.models import Tenant, UserTenant


class TestCreateOwner:
    """Test the create-owner command."""

    ARGS = [
        'create-owner',
        '--business-name', 'Galle Road Mart',
        '--full-name', 'Ruwan Fernando',
        '--email', 'ruwan@galle-mart.lk',
        '--password', 'martpass1',
    ]

    def test_creates_store_and_owner(self, app, session):
        result = app.test_cli_runner().invoke(args=self.ARGS)

        assert result.exit_code == 0, result.output
        assert 'Store created.' in result.output
        tenant = session.query(Tenant).filter_by(slug='galle-road-mart').one()
        membership = session.query(UserTenant).filter_by(tenant_id=tenant.id).one()
        assert membership.role == 'OWNER'
        assert membership.code == 'user0001'

    def test_duplicate_email_fails(self, app):
        runner = app.test_cli_runner()
        runner.invoke(args=self.ARGS)

        result = runner.invoke(args=self.ARGS)

        assert result.exit_code == 1
        assert 'already registered' in result.output


class TestInitDb:
    def test_init_db_is_idempotent(self, app):
        result = app.test_cli_runner().invoke(args=['init-db'])
        assert result.exit_code == 0
        assert 'Database tables created.' in result.output
