import argparse
import sys

from gatehouse.core.config import Settings
from gatehouse.domain.models import utcnow
from gatehouse.infrastructure.repositories.user_repository import UserRepository


def main() -> int:
    parser = argparse.ArgumentParser(description="Grant or revoke admin rights for an existing account.")
    parser.add_argument("email", help="email address of the account")
    parser.add_argument("--revoke", action="store_true", help="remove admin rights instead")
    args = parser.parse_args()

    settings = Settings()
    users = UserRepository(settings.database_path)

    user = users.get_by_email(args.email)
    if user is None:
        print(f"No account registered for {args.email}.", file=sys.stderr)
        return 1

    with users.user_lock(user.id):
        user = users.get_by_id(user.id)
        user.admin = not args.revoke
        user.admin_notes.append(
            f"{utcnow().isoformat()} operator: {'revoke' if args.revoke else 'grant'} admin"
        )
        user.updated_at = utcnow()
        users.update(user)

    print(f"{user.username} ({user.email}) admin={user.admin}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
