"""Static catalog mapping provider products and variants to plan tiers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from .models import PlanType


@dataclass(frozen=True)
class PlanDefinition:
    """Describes a plan tier and how it is presented."""

    key: PlanType
    display_name: str


PLAN_DEFINITIONS: Dict[PlanType, PlanDefinition] = {
    PlanType.FREE: PlanDefinition(key=PlanType.FREE, display_name="Free"),
    PlanType.TESTIMONIALHUB_PRO: PlanDefinition(
        key=PlanType.TESTIMONIALHUB_PRO,
        display_name="TestimonialHub Pro",
    ),
    PlanType.STATUSLOOPS_PRO: PlanDefinition(
        key=PlanType.STATUSLOOPS_PRO,
        display_name="StatusLoops Pro",
    ),
    PlanType.SHOTLOOPS_PRO: PlanDefinition(
        key=PlanType.SHOTLOOPS_PRO,
        display_name="ShotLoops Pro",
    ),
    PlanType.TRUSTLOOPS_BUNDLE: PlanDefinition(
        key=PlanType.TRUSTLOOPS_BUNDLE,
        display_name="TrustLoops Bundle",
    ),
}

DEFAULT_VARIANT_PLANS: Dict[int, PlanType] = {
    12345: PlanType.TESTIMONIALHUB_PRO,
    12346: PlanType.STATUSLOOPS_PRO,
    12347: PlanType.SHOTLOOPS_PRO,
    12348: PlanType.TRUSTLOOPS_BUNDLE,
}

DEFAULT_PRODUCT_PLANS: Dict[int, PlanType] = {
    12345: PlanType.TESTIMONIALHUB_PRO,
}


@dataclass(frozen=True)
class PlanCatalog:
    """Lookup table from provider catalog identifiers to :class:`PlanType`.

    Resolution order is an exact ``(product_id, variant_id)`` pair, then a
    product-wide entry, then a variant-only entry. Anything unmatched is
    treated as the free tier so unexpected catalog data never blocks
    reconciliation of status and period fields.
    """

    pairs: Mapping[Tuple[int, int], PlanType] = field(default_factory=dict)
    products: Mapping[int, PlanType] = field(default_factory=lambda: dict(DEFAULT_PRODUCT_PLANS))
    variants: Mapping[int, PlanType] = field(default_factory=lambda: dict(DEFAULT_VARIANT_PLANS))

    def resolve(self, product_id: Optional[int], variant_id: Optional[int]) -> PlanType:
        if product_id is not None and variant_id is not None:
            paired = self.pairs.get((product_id, variant_id))
            if paired is not None:
                return paired
        if product_id is not None and product_id in self.products:
            return self.products[product_id]
        if variant_id is not None and variant_id in self.variants:
            return self.variants[variant_id]
        return PlanType.FREE


DEFAULT_CATALOG = PlanCatalog()


def resolve_plan(
    product_id: Optional[int],
    variant_id: Optional[int],
    catalog: Optional[PlanCatalog] = None,
) -> PlanType:
    """Resolve a plan tier using ``catalog`` or the default catalog."""

    return (catalog or DEFAULT_CATALOG).resolve(product_id, variant_id)


def get_plan_definition(plan_type: PlanType) -> PlanDefinition:
    """Return a plan definition, raising if unsupported."""

    try:
        return PLAN_DEFINITIONS[plan_type]
    except KeyError as exc:  # pragma: no cover - guarded by static catalog
        raise KeyError(f"Unknown plan type: {plan_type}") from exc


__all__ = [
    "DEFAULT_CATALOG",
    "DEFAULT_PRODUCT_PLANS",
    "DEFAULT_VARIANT_PLANS",
    "PLAN_DEFINITIONS",
    "PlanCatalog",
    "PlanDefinition",
    "get_plan_definition",
    "resolve_plan",
]
