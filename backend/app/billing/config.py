"""Billing configuration helpers."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Tuple

from .models import PlanType
from .plans import DEFAULT_PRODUCT_PLANS, DEFAULT_VARIANT_PLANS, PlanCatalog


@dataclass(frozen=True)
class BillingConfig:
    """Configuration for payment provider webhook ingestion."""

    webhook_secret: Optional[str]
    signature_header: str
    plan_catalog: PlanCatalog


def _parse_plan(raw: str, *, variable: str) -> PlanType:
    try:
        return PlanType(raw.strip().lower())
    except ValueError as exc:
        raise ValueError(f"{variable}: unknown plan type {raw!r}") from exc


def _parse_id(raw: str, *, variable: str) -> int:
    try:
        return int(raw.strip())
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{variable}: expected integer id, got {raw!r}") from exc


def _split_entries(value: Optional[str]):
    if not value:
        return []
    return [entry.strip() for entry in value.split(",") if entry.strip()]


def _parse_id_map(value: Optional[str], *, variable: str) -> Dict[int, PlanType]:
    """Parse ``"12345:testimonialhub_pro,12346:statusloops_pro"``."""

    mapping: Dict[int, PlanType] = {}
    for entry in _split_entries(value):
        key, sep, plan = entry.partition(":")
        if not sep:
            raise ValueError(f"{variable}: expected 'id:plan', got {entry!r}")
        mapping[_parse_id(key, variable=variable)] = _parse_plan(plan, variable=variable)
    return mapping


def _parse_pair_map(value: Optional[str], *, variable: str) -> Dict[Tuple[int, int], PlanType]:
    """Parse ``"111/12345:testimonialhub_pro"`` (product/variant:plan)."""

    mapping: Dict[Tuple[int, int], PlanType] = {}
    for entry in _split_entries(value):
        key, sep, plan = entry.partition(":")
        product, slash, variant = key.partition("/")
        if not sep or not slash:
            raise ValueError(f"{variable}: expected 'product/variant:plan', got {entry!r}")
        pair = (_parse_id(product, variable=variable), _parse_id(variant, variable=variable))
        mapping[pair] = _parse_plan(plan, variable=variable)
    return mapping


def load_billing_config(env: Optional[Mapping[str, str]] = None) -> BillingConfig:
    """Load :class:`BillingConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    webhook_secret = (env_mapping.get("LEMONSQUEEZY_WEBHOOK_SECRET") or "").strip() or None
    signature_header = (env_mapping.get("LEMONSQUEEZY_SIGNATURE_HEADER") or "X-Signature").strip()

    variants = dict(DEFAULT_VARIANT_PLANS)
    variants.update(
        _parse_id_map(env_mapping.get("BILLING_PLAN_VARIANTS"), variable="BILLING_PLAN_VARIANTS")
    )
    products = dict(DEFAULT_PRODUCT_PLANS)
    products.update(
        _parse_id_map(env_mapping.get("BILLING_PLAN_PRODUCTS"), variable="BILLING_PLAN_PRODUCTS")
    )
    pairs = _parse_pair_map(env_mapping.get("BILLING_PLAN_PAIRS"), variable="BILLING_PLAN_PAIRS")

    return BillingConfig(
        webhook_secret=webhook_secret,
        signature_header=signature_header or "X-Signature",
        plan_catalog=PlanCatalog(pairs=pairs, products=products, variants=variants),
    )


__all__ = ["BillingConfig", "load_billing_config"]
