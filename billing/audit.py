"""
Audit trail writer for billing mutations.
"""

from datetime import datetime
from typing import Optional

from .identity import Actor
from .storage import BillingStore


def record(
    store: BillingStore,
    actor: Optional[Actor],
    action: str,
    entity_type: str,
    entity_id: Optional[str],
    changes: Optional[dict],
    at: datetime,
) -> dict:
    """Append one audit_logs row."""
    return store.insert("audit_logs", {
        "user_id": actor.user_id if actor else None,
        "action": action,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "changes": changes,
        "created_at": at.isoformat(),
    })
