"""CLI bootstrap tests."""

from posdesk.models import Role, User


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init"])
    assert first.exit_code == 0, first.output
    assert "PASS Created user: cashier" in first.output

    second = runner.invoke(args=["system", "init"])
    assert second.exit_code == 0, second.output
    assert "User 'cashier' already exists" in second.output

    assert {r.name for r in db_session.query(Role).all()} == {"admin", "manager", "cashier"}
    assert db_session.query(User).count() == 3


def test_perms_check(app, db_session):
    runner = app.test_cli_runner()
    runner.invoke(args=["system", "init"])

    granted = runner.invoke(args=["perms", "check", "manager", "VIEW_CUSTOMER_CONTACT"])
    assert "PASS User 'manager' HAS permission" in granted.output

    denied = runner.invoke(args=["perms", "check", "cashier", "VIEW_CUSTOMER_CONTACT"])
    assert "DOES NOT HAVE" in denied.output

    unknown = runner.invoke(args=["perms", "check", "cashier", "FLY"])
    assert "Unknown permission code" in unknown.output

    retired = runner.invoke(args=["perms", "check", "admin", "MANAGE_USERS"])
    assert "Unknown permission code" in retired.output


def test_users_create_rejects_weak_password(app, db_session):
    runner = app.test_cli_runner()
    runner.invoke(args=["system", "init"])

    result = runner.invoke(args=[
        "users", "create",
        "--username", "temp",
        "--email", "temp@posdesk.local",
        "--password", "weak",
        "--role", "cashier",
    ])

    assert "FAIL Password validation failed" in result.output
    assert db_session.query(User).filter_by(username="temp").first() is None
