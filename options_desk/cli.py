"""
Operator commands for the Options Desk.

USAGE:
    options-desk init-db
    options-desk create-invite --max-uses 5 --expires-days 30
    options-desk promote-admin someone@example.com
    options-desk serve --port 8080
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import timedelta
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from options_desk.common.logging import init_structured_logging, log_event
from options_desk.common.timeutils import utc_now
from options_desk.config import get_settings
from options_desk.db import SessionLocal, init_db
from options_desk.models import InviteCode, User
from options_desk.security import generate_invite_code

logger = logging.getLogger("options_desk.cli")


def cmd_init_db(args: argparse.Namespace) -> int:
    init_db()
    log_event(logger, "cli.init_db", message="Database schema is up to date")
    return 0


def cmd_create_invite(args: argparse.Namespace) -> int:
    if args.max_uses < 1:
        print("ERROR: --max-uses must be at least 1", file=sys.stderr)
        return 2
    init_db()
    code = (args.code or generate_invite_code()).strip()
    expires_at = utc_now() + timedelta(days=args.expires_days) if args.expires_days else None
    with SessionLocal() as db:
        db.add(InviteCode(code=code, max_uses=args.max_uses, expires_at=expires_at))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            print(f"ERROR: invite code {code} already exists", file=sys.stderr)
            return 1
    log_event(logger, "cli.invite_created", invite_code=code, max_uses=args.max_uses)
    print(code)
    return 0


def cmd_promote_admin(args: argparse.Namespace) -> int:
    init_db()
    email = args.email.strip().lower()
    with SessionLocal() as db:
        user = db.execute(select(User).where(func.lower(User.email) == email)).scalar_one_or_none()
        if user is None:
            print(f"ERROR: no user with email {email}", file=sys.stderr)
            return 1
        user.is_admin = True
        db.commit()
        log_event(logger, "cli.admin_promoted", user_id=user.id)
    print(f"{email} is now an admin")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("options_desk.app:app", host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="options-desk", description="Options Desk operator commands.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init-db", help="Create missing tables.")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("create-invite", help="Create an invite code and print it.")
    p.add_argument("--code", default=None, help="Explicit code (default: random).")
    p.add_argument("--max-uses", type=int, default=1)
    p.add_argument("--expires-days", type=int, default=None)
    p.set_defaults(func=cmd_create_invite)

    p = sub.add_parser("promote-admin", help="Grant admin rights to an existing user.")
    p.add_argument("email")
    p.set_defaults(func=cmd_promote_admin)

    p = sub.add_parser("serve", help="Run the API with uvicorn.")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=8080)
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    init_structured_logging(service=settings.service_name, env=settings.env, level=settings.log_level)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
