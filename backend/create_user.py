import argparse
import asyncio

from upnext.core.errors import UpNextError
from upnext.core.store import close_store, get_store
from upnext.services.user_directory import UserDirectory


async def create_user(username: str, password: str, name: str, role: str) -> None:
    store = await get_store()
    try:
        if store.kind == "memory":
            # Nothing would outlive this process
            raise SystemExit("No persistent store configured. Set REDIS_URL (or KV_URL) and retry.")

        users = UserDirectory(store)
        existing = await users.get_by_username(username)

        if existing:
            print(f"User {username} already exists.")
            # Reset password and reactivate just in case
            await users.update(existing.id, password=password, is_active=True)
            print(f"Updated password for {existing.username}")
            return

        user = await users.create(username=username, password=password, name=name, role=role)
        print(f"Created {user.role.value} user: {user.username}")
    finally:
        await close_store()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create or reset a user in the configured store")
    parser.add_argument("username")
    parser.add_argument("password")
    parser.add_argument("--name", default=None, help="Display name (defaults to the username)")
    parser.add_argument("--role", default="manager", choices=["salesperson", "bdc", "manager"])
    args = parser.parse_args()

    try:
        asyncio.run(create_user(args.username, args.password, args.name or args.username, args.role))
    except UpNextError as e:
        raise SystemExit(f"Failed: {e.message}")


if __name__ == "__main__":
    main()
