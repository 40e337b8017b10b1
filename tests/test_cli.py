from __future__ import annotations

from sqlalchemy import select

from options_desk.cli import main
from options_desk.db import SessionLocal
from options_desk.models import InviteCode, User
from options_desk.security import hash_password


def test_create_invite_prints_code(app_env, capsys):
    assert main(["create-invite", "--code", "LAUNCH24", "--max-uses", "5", "--expires-days", "7"]) == 0
    assert capsys.readouterr().out.strip().endswith("LAUNCH24")
    with SessionLocal() as db:
        invite = db.execute(select(InviteCode).where(InviteCode.code == "LAUNCH24")).scalar_one()
        assert invite.max_uses == 5
        assert invite.expires_at is not None

    assert main(["create-invite", "--code", "LAUNCH24"]) == 1
    assert main(["create-invite", "--max-uses", "0"]) == 2


def test_promote_admin(app_env, capsys):
    assert main(["init-db"]) == 0
    with SessionLocal() as db:
        db.add(User(name="Ops", email="ops@example.com", password_hash=hash_password("secret1")))
        db.commit()

    assert main(["promote-admin", "OPS@example.com"]) == 0
    with SessionLocal() as db:
        assert db.execute(select(User.is_admin).where(User.email == "ops@example.com")).scalar_one() is True

    assert main(["promote-admin", "nobody@example.com"]) == 1
