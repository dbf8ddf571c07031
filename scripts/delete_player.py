#!/usr/bin/env python3
"""
Delete a player by email so you can re-register with the same email/username.
Campaigns the player kept the books for are kept but lose their bookkeeper.
Usage: python scripts/delete_player.py <email>
"""
import sys
import os

# Allow running from repo root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from kingmaker.api.database import SessionLocal
from kingmaker.api.models import Campaign, Player


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: python scripts/delete_player.py <email>", file=sys.stderr)
        sys.exit(1)
    email = sys.argv[1].strip()
    if not email:
        print("Error: provide an email.", file=sys.stderr)
        sys.exit(1)

    db = SessionLocal()
    try:
        player = db.query(Player).filter(Player.email == email).first()
        if not player:
            print(f"No player found with email: {email!r}")
            return
        username = player.username
        orphaned = 0
        # Unlink campaigns so the FK doesn't block delete
        for campaign in db.query(Campaign).filter(Campaign.created_by == player.id):
            campaign.created_by = None
            orphaned += 1
        db.delete(player)
        db.commit()
        print(f"Deleted player {username!r} ({email}), {orphaned} campaign(s) without bookkeeper.")
    except Exception as e:
        db.rollback()
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    main()
