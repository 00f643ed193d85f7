# propdesk/cli/__main__.py
from __future__ import annotations

import argparse
import json

from ..db import SessionLocal, init_db
from ..domain.audit import activity_for
from ..logging_config import configure_logging
from .seed_demo import seed_demo


def _cmd_seed(args: argparse.Namespace) -> None:
    out = seed_demo(
        admin_email=args.admin_email,
        admin_name=args.admin_name,
        create_sample_data=(not args.no_sample_data),
    )
    print(
        json.dumps(
            {
                "ok": True,
                "admin_email": out.admin_email,
                "admin_ref": out.admin_ref,
                "sample_property_id": out.property_id,
                "sample_task_id": out.task_id,
            }
        )
    )


def _cmd_activity(args: argparse.Namespace) -> None:
    init_db()
    db = SessionLocal()
    try:
        rows = activity_for(db, args.entity_type, args.entity_id, include_details_match=args.details_match)
        for r in rows:
            print(f"{r.created_at.isoformat()}  #{r.id}  {r.action:<7} {r.entity}:{r.entity_id}  {r.user_name or '-'}  {r.details or ''}")
    finally:
        db.close()


def _cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn

    uvicorn.run("propdesk.main:app", host=args.host, port=args.port, log_config=None)


def main() -> None:
    configure_logging()
    p = argparse.ArgumentParser(prog="propdesk")
    sub = p.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed", help="create an admin user and optional sample data")
    seed.add_argument("--admin-email", default="admin@propdesk.local")
    seed.add_argument("--admin-name", default="Admin")
    seed.add_argument("--no-sample-data", action="store_true")
    seed.set_defaults(func=_cmd_seed)

    act = sub.add_parser("activity", help="print the activity timeline of one entity")
    act.add_argument("entity_type")
    act.add_argument("entity_id")
    act.add_argument("--details-match", action="store_true", help="also match the id inside free-text details")
    act.set_defaults(func=_cmd_activity)

    srv = sub.add_parser("serve", help="run the HTTP API")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)
    srv.set_defaults(func=_cmd_serve)

    args = p.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
