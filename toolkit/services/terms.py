from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from toolkit.models import CatalogEntry, RenewalDecision
from toolkit.schemas import Recommendation
from toolkit.services.catalog import get_entry, update_entry

logger = logging.getLogger(__name__)

RETIRED_STATUS = "retired"

_RENEWING = frozenset({Recommendation.RENEW.value, Recommendation.RENEW_WITH_CHANGES.value})


def apply_terms(session: Session, decision: RenewalDecision) -> CatalogEntry:
    """Write an implemented decision's terms onto its catalog entry.

    Unset terms keep the entry's current values. The change goes through the
    catalog write path, so the next push carries it to the spreadsheet.
    """
    entry = get_entry(session, decision.app_id)
    values: dict[str, Any] = {}
    if decision.final_decision in _RENEWING:
        if decision.new_renewal_date is not None:
            values["renewal_date"] = decision.new_renewal_date
        if decision.new_annual_cost is not None:
            values["annual_cost"] = decision.new_annual_cost
        if decision.new_licenses is not None:
            values["licenses"] = decision.new_licenses
    elif decision.final_decision == Recommendation.RETIRE.value:
        values["status"] = RETIRED_STATUS

    if values:
        update_entry(session, entry, values)
        logger.info(
            "Applied %s terms from decision %s to catalog entry %s: %s",
            decision.final_decision,
            decision.id,
            entry.id,
            ", ".join(sorted(values)),
        )
    return entry
