"""Write a .env with a generated JWT secret and the admin password."""
import argparse
import getpass
import secrets
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
MIN_PASSWORD_LENGTH = 8

TEMPLATE = """# Server
APP_ENV=development
ORIGINS=http://localhost:3000

# Admin
ADMIN_AUTH_MODE=hashed
ADMIN_USERNAME=admin
ADMIN_PASSWORD={password}

# JWT secret (generated)
JWT_SECRET={jwt_secret}
JWT_EXPIRE_MINUTES=120

# Storage
DATABASE_URL=sqlite:///./responses.db
UPLOAD_DIR=./uploads
MAX_FILE_SIZE=1048576
"""


def render_env(password: str) -> str:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
    return TEMPLATE.format(password=password, jwt_secret=secrets.token_hex(64))


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--path", type=Path, default=ROOT / ".env")
    parser.add_argument("--force", action="store_true", help="overwrite an existing file")
    args = parser.parse_args(argv)

    if args.path.exists() and not args.force:
        print(f"{args.path} already exists; pass --force to overwrite.", file=sys.stderr)
        return 1

    password = getpass.getpass(f"Admin password (min {MIN_PASSWORD_LENGTH} characters): ")
    try:
        content = render_env(password)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    args.path.write_text(content, encoding="utf-8")
    print(f"Wrote {args.path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
