"""Выдаёт JWT для ручных вызовов API: python -m referral_engine.scripts.issue_token admin@fixlo admin"""

from __future__ import annotations

import argparse

from referral_engine.utils.security import Role, issue_access_token


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("subject")
    parser.add_argument("role", choices=[role.value for role in Role], default=Role.VIEWER.value, nargs="?")
    parser.add_argument("--ttl", type=int, default=None, help="Время жизни в минутах")
    args = parser.parse_args()
    print(issue_access_token(args.subject, Role(args.role), ttl_minutes=args.ttl))


if __name__ == "__main__":
    main()
