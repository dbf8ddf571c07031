"""
Persistence for kingdoms and their settlements.
Kingdoms are stored as one JSON document per campaign; saves take a partial
kingdom and shallow-merge its top-level keys (last writer wins).
"""

import json
import logging
from typing import Any

from sqlalchemy.orm import Session

from kingmaker.engine.settlements import Settlement
from kingmaker.engine.state import Kingdom

from .models import Campaign, SettlementRecord

logger = logging.getLogger(__name__)


class CampaignNotFound(LookupError):
    def __init__(self, campaign_id: str):
        super().__init__(f"Campaign {campaign_id} not found")
        self.campaign_id = campaign_id


def _loads(raw: Any, default: Any) -> Any:
    if not isinstance(raw, str):
        return raw if raw is not None else default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return default


def settlement_from_record(row: SettlementRecord) -> Settlement:
    return Settlement.from_dict({
        "id": row.id,
        "name": row.name,
        "settlement_type": row.settlement_type,
        "level": row.level,
        "overcrowded": row.overcrowded,
        "secondary_territory": row.secondary_territory,
        "structures": _loads(row.structures, []),
    })


class KingdomStorage:
    """Load and save one campaign's kingdom and settlements."""

    def __init__(self, db: Session, campaign_id: str):
        self.db = db
        self.campaign_id = campaign_id

    def _campaign(self) -> Campaign:
        row = self.db.query(Campaign).filter(Campaign.id == self.campaign_id).first()
        if row is None:
            raise CampaignNotFound(self.campaign_id)
        return row

    def load_raw(self) -> dict[str, Any]:
        raw = _loads(self._campaign().kingdom, {})
        return raw if isinstance(raw, dict) else {}

    def load(self) -> Kingdom:
        return Kingdom.from_dict(self.load_raw())

    def save(self, partial: dict[str, Any]) -> None:
        """Shallow-merge a partial kingdom into the stored record. Nested values replace whole."""
        if not partial:
            return
        row = self._campaign()
        stored = _loads(row.kingdom, {})
        if not isinstance(stored, dict):
            stored = {}
        stored.update(partial)
        row.kingdom = json.dumps(stored)
        self.db.commit()
        logger.debug("Saved kingdom %s keys %s", self.campaign_id, sorted(partial))

    def load_settlements(self) -> list[Settlement]:
        rows = (
            self.db.query(SettlementRecord)
            .filter(SettlementRecord.campaign_id == self.campaign_id)
            .order_by(SettlementRecord.created_at)
            .all()
        )
        return [settlement_from_record(row) for row in rows]
