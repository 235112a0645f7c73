#!/usr/bin/env python3
"""
Placement admin CLI -- bootstrap accounts and seed tests/teams without the API.

Usage:
  python main.py create-admin "Ada Lovelace" ada@example.com
  python main.py add-test "Aptitude round 1" --team 3
  python main.py add-member --team 3 --user 7
  python main.py add-member --team 3 --user 7 --unverified
  python main.py list-tests

The password for create-admin is always read interactively, never from an
argument or environment variable.

Database URLs come from the same settings as the API (AUTH_DB_URL,
PLACEMENT_DB_URL).
"""

import argparse
import getpass
import sys

from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.store import UserStore
from core.config import get_settings
from placement.models import TeamMember, Test
from placement.store import PlacementStore


def _create_admin(args: argparse.Namespace) -> int:
    settings = get_settings()
    password = getpass.getpass("  Password: ")
    if len(password) < settings.password_min_length:
        print(f"  [!] Password must be at least {settings.password_min_length} characters long.")
        return 1
    if password != getpass.getpass("  Confirm password: "):
        print("  [!] Password and Password Confirmation does not match.")
        return 1

    store = UserStore(settings.auth_db_url, bcrypt_rounds=settings.bcrypt_rounds)
    try:
        uid = store.create_user(User(name=args.name, email=args.email, role="admin", confirmed=True), password)
    except IntegrityError:
        print(f"  [!] An account for '{args.email}' already exists.")
        return 1
    finally:
        store.close()
    print(f"  Admin account created (id={uid}).")
    return 0


def _add_test(args: argparse.Namespace) -> int:
    store = PlacementStore(get_settings().placement_db_url)
    try:
        test_id = store.create_test(Test(title=args.title, team_id=args.team))
    finally:
        store.close()
    print(f"  Test '{args.title}' created (id={test_id}, team={args.team}).")
    return 0


def _add_member(args: argparse.Namespace) -> int:
    settings = get_settings()
    users = UserStore(settings.auth_db_url, bcrypt_rounds=settings.bcrypt_rounds)
    try:
        if users.get_by_id(args.user) is None:
            print(f"  [!] No active user with id {args.user}.")
            return 1
    finally:
        users.close()

    store = PlacementStore(settings.placement_db_url)
    try:
        store.add_team_member(TeamMember(team_id=args.team, user_id=args.user, verified=not args.unverified))
    finally:
        store.close()
    state = "unverified" if args.unverified else "verified"
    print(f"  User {args.user} is now a {state} member of team {args.team}.")
    return 0


def _list_tests(args: argparse.Namespace) -> int:
    store = PlacementStore(get_settings().placement_db_url)
    try:
        tests = store.list_tests()
    finally:
        store.close()
    if not tests:
        print("  No tests yet. Add one with: python main.py add-test TITLE --team N")
        return 0
    print(f"  {'ID':>4}  {'TEAM':>4}  TITLE")
    for test in tests:
        print(f"  {test.id:>4}  {test.team_id:>4}  {test.title}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="placement",
        description="Administrative tasks for the placement backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-admin "Ada Lovelace" ada@example.com
  python main.py add-test "Aptitude round 1" --team 3
  python main.py add-member --team 3 --user 7
  python main.py list-tests
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("create-admin", help="Create a confirmed admin account")
    p.add_argument("name", help="Display name")
    p.add_argument("email", help="Login e-mail address")
    p.set_defaults(func=_create_admin)

    p = sub.add_parser("add-test", help="Publish a test for a team")
    p.add_argument("title", help="Test title")
    p.add_argument("--team", type=int, required=True, metavar="TEAM_ID", help="Owning team id")
    p.set_defaults(func=_add_test)

    p = sub.add_parser("add-member", help="Add (or re-verify) a team membership")
    p.add_argument("--team", type=int, required=True, metavar="TEAM_ID")
    p.add_argument("--user", type=int, required=True, metavar="USER_ID")
    p.add_argument(
        "--unverified",
        action="store_true",
        help="Record the membership without verifying it. Unverified members cannot mark tests completed.",
    )
    p.set_defaults(func=_add_member)

    p = sub.add_parser("list-tests", help="List published tests")
    p.set_defaults(func=_list_tests)

    args = parser.parse_args()
    if not getattr(args, "func", None):
        parser.print_help()
        return
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
