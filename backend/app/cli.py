"""Management CLI for rights maintenance.

Usage:
    python -m app.cli rebuild-right-assignments   # Recompute every user's index
    python -m app.cli check-hierarchy             # Report supervisory node cycles
    python -m app.cli seed-admin-rights           # Create the rights this service checks
"""

import asyncio
import sys

from app.auth.permissions import ADMIN_ATTACHMENTS, ADMIN_RIGHTS
from app.database import async_session
from app.schemas.rights import RightIn
from app.services.access import load_hierarchy
from app.services.right_assignments import rebuild_all
from app.services.rights import save_right


async def rebuild_right_assignments() -> int:
    async with async_session() as db:
        async with db.begin():
            count = await rebuild_all(db)
    print(f"Rebuilt right assignments for {count} user(s)")
    return 0


async def check_hierarchy() -> int:
    async with async_session() as db:
        hierarchy = await load_hierarchy(db)

    cycles = hierarchy.find_cycles()
    if not cycles:
        print(f"  OK ({len(hierarchy)} supervisory node(s), no cycles)")
        return 0

    for cycle in cycles:
        codes = [hierarchy.node(node_id).code for node_id in cycle]
        print(f"  CYCLE: {' -> '.join(codes)}")
    print(f"\n{len(cycles)} cycle(s) found")
    return 1


async def seed_admin_rights() -> int:
    async with async_session() as db:
        async with db.begin():
            # Plain rights first so attachments can refer to them
            for name, right_type in ADMIN_RIGHTS.items():
                await save_right(db, RightIn(name=name, type=right_type))
            for name, attached in ADMIN_ATTACHMENTS.items():
                await save_right(
                    db, RightIn(name=name, type=ADMIN_RIGHTS[name], attachments=attached)
                )
    for name in ADMIN_RIGHTS:
        print(f"  {name}")
    print(f"\n{len(ADMIN_RIGHTS)} right(s) seeded")
    return 0


COMMANDS = {
    "rebuild-right-assignments": rebuild_right_assignments,
    "check-hierarchy": check_hierarchy,
    "seed-admin-rights": seed_admin_rights,
}


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    cmd = argv[0] if argv else ""
    if cmd not in COMMANDS:
        print(__doc__)
        return 2
    return asyncio.run(COMMANDS[cmd]())


if __name__ == "__main__":
    sys.exit(main())
