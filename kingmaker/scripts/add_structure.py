#!/usr/bin/env python3
"""
Place a predefined structure in a settlement directly in the DB. Use to fix up
settlements outside the sheet. Usage (from repo root):
  python -m kingmaker.scripts.add_structure <settlement_id_or_name> <structure_name>
Example: python -m kingmaker.scripts.add_structure Tatzlford Granary
The structure name must exist in kingmaker/data/structures.json; it is stored as {"ref": "<name>"}.
"""
import json
import sys
import os

# Run from repo root so kingmaker is importable
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from kingmaker.api.database import DATABASE_URL, SessionLocal, init_db
from kingmaker.api.models import SettlementRecord
from kingmaker.engine.definitions import load_structure_catalog


def main():
    if len(sys.argv) < 3:
        print("Usage: python -m kingmaker.scripts.add_structure <settlement_id_or_name> <structure_name>")
        print("Example: python -m kingmaker.scripts.add_structure Tatzlford Granary")
        sys.exit(1)
    settlement_id_or_name = sys.argv[1]
    structure_name = sys.argv[2].strip()

    catalog = load_structure_catalog()
    if structure_name not in catalog:
        print(f"Unknown structure: {structure_name!r}. Known: {', '.join(sorted(catalog))}")
        sys.exit(2)

    init_db()
    db = SessionLocal()
    try:
        row = db.query(SettlementRecord).filter(
            (SettlementRecord.id == settlement_id_or_name) | (SettlementRecord.name == settlement_id_or_name)
        ).first()
        if not row:
            print(f"No settlement found with id or name: {settlement_id_or_name}")
            sys.exit(2)
        structures = json.loads(row.structures or "[]")
        structures.append({"ref": structure_name})
        row.structures = json.dumps(structures)
        db.commit()
        print(f"Added {structure_name} to settlement id={row.id} name={row.name} ({len(structures)} structures)")
        print(f"DB: {DATABASE_URL}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
