# Overview: Pytest coverage for the Flask CLI commands.

from datetime import timedelta

from sqlalchemy import update

from comerciopro.extensions import db
from comerciopro.models import Product, SessionToken, Store, User
from comerciopro.services.session_service import create_session
from comerciopro.time_utils import utcnow

from conftest import fetch_product


class TestSystemInit:

    def test_creates_default_store_and_users(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=['system', 'init'])

        assert result.exit_code == 0, result.output
        store = db.session.query(Store).one()
        assert store.name == "Loja Matriz"

        superadmin = db.session.query(User).filter_by(email="admin@sistema.com").one()
        assert superadmin.role == "superadmin"
        assert superadmin.store_id is None

        manager = db.session.query(User).filter_by(email="gerente@loja1.com").one()
        assert manager.role == "admin"
        assert manager.store_id == store.id

    def test_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()
        runner.invoke(args=['system', 'init'])

        result = runner.invoke(args=['system', 'init'])

        assert result.exit_code == 0, result.output
        assert "SKIP" in result.output
        assert db.session.query(User).count() == 2
        assert db.session.query(Store).count() == 1


class TestUserAndStoreCommands:

    def test_create_store_and_user(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=['stores', 'create', '--name', 'Loja Sul', '--location', 'Av. 2'])
        assert result.exit_code == 0, result.output
        store = db.session.query(Store).filter_by(name='Loja Sul').one()

        result = runner.invoke(args=[
            'users', 'create',
            '--name', 'Gerente Sul',
            '--email', 'sul@loja.com',
            '--password', 'segredo1',
            '--role', 'admin',
            '--store-id', str(store.id),
        ])
        assert result.exit_code == 0, result.output

        result = runner.invoke(args=['users', 'list'])
        assert 'sul@loja.com' in result.output

        result = runner.invoke(args=['stores', 'list'])
        assert 'Loja Sul' in result.output

    def test_create_admin_without_store_fails(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            'users', 'create', '--name', 'X', '--email', 'x@x.com', '--password', 'segredo1', '--role', 'admin',
        ])
        assert result.exit_code != 0
        assert 'store' in result.output.lower()


class TestLedgerVerify:

    def test_balanced_ledger(self, app, product_a):
        result = app.test_cli_runner().invoke(args=['ledger', 'verify'])
        assert result.exit_code == 0, result.output
        assert 'PASS' in result.output

    def test_reports_out_of_balance_products(self, app, product_a):
        db.session.execute(update(Product).where(Product.id == product_a.id).values(stock_quantity=3))
        db.session.commit()

        result = app.test_cli_runner().invoke(args=['ledger', 'verify'])

        assert result.exit_code != 0
        assert f'Product {product_a.id}' in result.output
        assert fetch_product(product_a.id).stock_quantity == 3


class TestCleanupSessions:

    def test_deletes_old_revoked_sessions_only(self, app, admin_a):
        old, _ = create_session(admin_a.id)
        fresh, _ = create_session(admin_a.id)
        old.is_revoked = True
        old.created_at = utcnow() - timedelta(days=40)
        db.session.commit()
        fresh_id = fresh.id

        result = app.test_cli_runner().invoke(args=['ledger', 'cleanup-sessions', '--retention-days', '30'])

        assert result.exit_code == 0, result.output
        assert 'Deleted 1' in result.output
        assert [s.id for s in db.session.query(SessionToken).all()] == [fresh_id]
