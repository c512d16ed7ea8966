"""
Print the pending OTP for an email address, for manual end-to-end runs.

    python -m scripts.print_otp <email>

Writes only the code (or USER_NOT_FOUND / NO_OTP) with no trailing newline.
"""

import argparse
import sys

import database
from accounts import find_user


def pending_otp(db, email: str) -> str:
    user = find_user(db, email=email)
    if not user:
        return "USER_NOT_FOUND"
    otp = user.get("otp") or {}
    if not otp.get("code"):
        return "NO_OTP"
    return str(otp["code"])


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="python -m scripts.print_otp")
    parser.add_argument("email")
    args = parser.parse_args(argv)

    if database.db is None:
        sys.stderr.write("ERROR DATABASE_URL not set\n")
        return 1
    sys.stdout.write(pending_otp(database.db, args.email))
    return 0


if __name__ == "__main__":
    sys.exit(main())
