"""
Plan Catalog

Validates and persists the pricing plans companies can be assigned to.
All mutations require a platform administrator and leave an audit entry.
"""

import logging
from typing import Callable, Optional

from . import audit
from .errors import ConflictError, NotFoundError, ValidationError
from .identity import Actor, require_platform_admin
from .models import PricingPlan, utcnow
from .storage import BillingStore
from .validators import PlanValidator

logger = logging.getLogger(__name__)

# Fields the catalog manages itself; never taken from input.
MANAGED_FIELDS = ("id", "created_at", "updated_at")


class PlanCatalog:
    """CRUD with validation for pricing plans."""

    def __init__(self, store: BillingStore, clock: Callable = utcnow):
        self.store = store
        self.clock = clock
        self.validator = PlanValidator()

    def validate(self, plan_input: dict | PricingPlan) -> PricingPlan:
        """
        Parse and validate plan input.

        Blank feature rows are dropped first, matching the admin form which
        always carries a trailing empty row.
        """
        if isinstance(plan_input, PricingPlan):
            plan = plan_input
        else:
            if not isinstance(plan_input, dict):
                raise ValidationError("Plan input must be an object")
            data = dict(plan_input)
            features = data.get("features") or []
            if not isinstance(features, list):
                raise ValidationError("features must be a list of strings")
            data["features"] = [f for f in features if not (isinstance(f, str) and not f.strip())]
            plan = PricingPlan.from_dict(data)

        self.validator.validate(plan)
        return plan

    def get(self, plan_id: str) -> PricingPlan:
        row = self.store.get("pricing_plans", plan_id)
        if row is None:
            raise NotFoundError(f"Pricing plan not found: {plan_id}")
        return PricingPlan.from_dict(row)

    def list(self, active_only: bool = False) -> list[PricingPlan]:
        filters = {"is_active": True} if active_only else None
        rows = self.store.select("pricing_plans", filters, order_by="display_order")
        return [PricingPlan.from_dict(r) for r in rows]

    def create(self, plan_input: dict | PricingPlan, *, actor: Actor) -> PricingPlan:
        require_platform_admin(actor)
        plan = self.validate(self._strip_managed(plan_input))

        now = self.clock()
        plan.created_at = now
        plan.updated_at = now
        row = self.store.insert("pricing_plans", plan.to_row())
        plan.id = row["id"]

        audit.record(self.store, actor, "create", "pricing_plan", plan.id, row, now)
        logger.info(f"Created pricing plan {plan.name} ({plan.id})")
        return plan

    def update(self, plan_id: str, plan_input: dict, *, actor: Actor) -> PricingPlan:
        """Merge changes into an existing plan and validate the result."""
        require_platform_admin(actor)
        existing = self.get(plan_id)

        merged = existing.to_row()
        merged.update(self._strip_managed(plan_input))
        plan = self.validate(merged)

        now = self.clock()
        plan.id = plan_id
        plan.created_at = existing.created_at
        plan.updated_at = now
        values = plan.to_row()
        if not self.store.update("pricing_plans", plan_id, values):
            raise NotFoundError(f"Pricing plan not found: {plan_id}")

        audit.record(self.store, actor, "update", "pricing_plan", plan_id, values, now)
        logger.info(f"Updated pricing plan {plan.name} ({plan_id})")
        return plan

    def delete(self, plan_id: str, *, actor: Actor) -> None:
        """Delete a plan unless an active company still references it."""
        require_platform_admin(actor)
        plan = self.get(plan_id)

        blocking = self.store.select(
            "companies",
            {"pricing_plan_id": plan_id, "is_active": True},
            order_by="name",
        )
        if blocking:
            ids = [c["id"] for c in blocking]
            raise ConflictError(
                f"Pricing plan {plan.name} is assigned to {len(ids)} active "
                f"compan{'y' if len(ids) == 1 else 'ies'}; reassign them first",
                blocking_company_ids=ids,
            )

        self.store.delete("pricing_plans", plan_id)
        audit.record(self.store, actor, "delete", "pricing_plan", plan_id, None, self.clock())
        logger.info(f"Deleted pricing plan {plan.name} ({plan_id})")

    @staticmethod
    def _strip_managed(plan_input):
        if isinstance(plan_input, dict):
            return {k: v for k, v in plan_input.items() if k not in MANAGED_FIELDS}
        return plan_input
