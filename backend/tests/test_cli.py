# Overview: Pytest coverage for the Flask CLI command groups.

from backoffice.models import Product, Tenant

from conftest import set_stock


class TestSeedDemo:
    def test_seed_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "seed-demo", "--tenant-code", "DEMO"])
        second = runner.invoke(args=["system", "seed-demo", "--tenant-code", "DEMO"])

        assert first.exit_code == 0
        assert "OK" in first.output
        assert "SKIP" in second.output
        db_session.expire_all()
        tenant = db_session.query(Tenant).filter_by(code="DEMO").one()
        assert db_session.query(Product).filter_by(tenant_id=tenant.id).count() == 3


class TestInventoryCheck:
    def test_clean_ledger(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["inventory", "check"])
        assert result.exit_code == 0
        assert "matches" in result.output

    def test_mismatch_exits_nonzero(self, app, db_session, tenant, location, product):
        set_stock(db_session, tenant, product, location, on_hand=3)

        result = app.test_cli_runner().invoke(args=["inventory", "check", "--tenant-id", str(tenant.id)])

        assert result.exit_code == 1
        assert f"product={product.id}" in result.output
        assert "on_hand=3" in result.output
