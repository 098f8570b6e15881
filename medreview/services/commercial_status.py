"""
Commercial status resolver.

Classifies a brand's standing in the sales pipeline from its commercial deals.
This is the single place that maps deal stages to a commercial status; every
view that shows commercial status calls it. The result only annotates review
rows and never gates a review transition.

    any won/active deal        -> partner   (dominates)
    else any lost/rejected deal -> rejected
    else any deal              -> prospect
    no deals                   -> unknown
"""
import enum
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional


class CommercialStatus(str, enum.Enum):
    PROSPECT = "prospect"
    PARTNER = "partner"
    REJECTED = "rejected"
    UNKNOWN = "unknown"


class DealStage(str, enum.Enum):
    PROSPECTING = "prospecting"
    QUALIFICATION = "qualification"
    INITIAL_PITCH = "initial_pitch"
    PROPOSAL = "proposal"
    NEGOTIATION = "negotiation"
    CONTRACT_SENT = "contract_sent"
    CLOSED_WON = "closed_won"
    ACTIVE = "active"
    CLOSED_LOST = "closed_lost"
    REJECTED = "rejected"


WON_STAGES = frozenset({DealStage.CLOSED_WON.value, DealStage.ACTIVE.value})
LOST_STAGES = frozenset({DealStage.CLOSED_LOST.value, DealStage.REJECTED.value})


@dataclass(frozen=True)
class DealRecord:
    """Read-only view of a commercial deal, as returned by a deal reader."""

    id: str
    brand_id: str
    stage: Optional[str]
    deal_name: Optional[str] = None
    deal_value: Optional[Decimal] = None


def _field(deal: Any, *names: str) -> Any:
    """Read the first present attribute/key among ``names``."""
    for name in names:
        if isinstance(deal, Mapping):
            if deal.get(name) is not None:
                return deal[name]
        elif getattr(deal, name, None) is not None:
            return getattr(deal, name)
    return None


def normalize_stage(stage: Any) -> Optional[str]:
    """Lower-cased stage string; enum members are unwrapped."""
    if stage is None:
        return None
    if hasattr(stage, 'value'):
        stage = stage.value
    stage = str(stage).strip().lower()
    return stage or None


def resolve_commercial_status(brand_id: str, deals: Iterable[Any]) -> CommercialStatus:
    """
    Commercial status of ``brand_id`` given its deals.

    ``deals`` may hold DealRecord objects, ORM rows or plain dicts; each needs a
    ``stage`` (or ``deal_stage``). Deals that name a different brand are
    ignored.
    """
    seen_any = False
    seen_lost = False

    for deal in deals:
        deal_brand = _field(deal, "brand_id", "partner_id")
        if deal_brand is not None and str(deal_brand) != str(brand_id):
            continue
        seen_any = True
        stage = normalize_stage(_field(deal, "stage", "deal_stage"))
        if stage in WON_STAGES:
            return CommercialStatus.PARTNER
        if stage in LOST_STAGES:
            seen_lost = True

    if seen_lost:
        return CommercialStatus.REJECTED
    if seen_any:
        return CommercialStatus.PROSPECT
    return CommercialStatus.UNKNOWN


def resolve_commercial_statuses(
    deals: Iterable[Any],
    brand_ids: Optional[Iterable[str]] = None,
) -> Dict[str, CommercialStatus]:
    """
    Batch variant for queue views: one status per brand.

    Brands listed in ``brand_ids`` with no deals resolve to UNKNOWN.
    """
    by_brand: Dict[str, List[Any]] = defaultdict(list)
    for deal in deals:
        deal_brand = _field(deal, "brand_id", "partner_id")
        if deal_brand is not None:
            by_brand[str(deal_brand)].append(deal)

    wanted = set(by_brand)
    if brand_ids is not None:
        wanted |= {str(b) for b in brand_ids}

    return {
        brand_id: resolve_commercial_status(brand_id, by_brand.get(brand_id, []))
        for brand_id in wanted
    }
