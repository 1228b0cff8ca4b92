from __future__ import annotations

from contextlib import contextmanager

import pytest

from laundrydesk import main as main_module
from laundrydesk.auth import verify_password
from laundrydesk.cli import create_staff_user, run_cli
from laundrydesk.config import parse_config
from laundrydesk.db import DbError
from laundrydesk.errors import ValidationError

CONFIG = {
    "auth": {"secret_key": "k"},
    "db": {"host": "localhost", "name": "laundry", "user": "app", "password": "pw"},
}


def test_create_staff_user(db, store, repos):
    user_id = create_staff_user(
        db, repos.users, username="nina", password="secret1", role="manager", phone_number="0931234567"
    )

    user = store.find("app_user", user_id)
    assert (user.username, user.role, user.status) == ("nina", "manager", "active")
    assert verify_password(user, "secret1")


def test_create_staff_user_rejects_duplicates_and_bad_input(db, repos):
    create_staff_user(db, repos.users, username="nina", password="secret1", role="employee", phone_number=None)

    with pytest.raises(ValueError, match="already exists"):
        create_staff_user(db, repos.users, username="nina", password="secret1", role="employee", phone_number=None)
    with pytest.raises(ValueError, match="6 characters"):
        create_staff_user(db, repos.users, username="omar", password="123", role="employee", phone_number=None)
    with pytest.raises(ValidationError):
        create_staff_user(db, repos.users, username="omar", password="secret1", role="owner", phone_number=None)


class _DownDb:
    @contextmanager
    def session(self):
        raise DbError("Cannot connect to database.")
        yield

    transaction = session


def test_run_cli_lets_connection_errors_reach_main(monkeypatch):
    answers = iter(["3"])
    monkeypatch.setattr("builtins.input", lambda _msg: next(answers))
    with pytest.raises(DbError):
        run_cli(_DownDb())


def test_main_exits_with_db_error_code(monkeypatch, capsys):
    monkeypatch.setattr(main_module, "load_config", lambda _path: parse_config(CONFIG))
    monkeypatch.setattr(main_module, "run_cli", lambda _db: run_cli(_DownDb()))
    monkeypatch.setattr("builtins.input", lambda _msg: "3")

    assert main_module.main() == 3
    assert "[DB ERROR]" in capsys.readouterr().out
