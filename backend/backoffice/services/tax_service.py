# Overview: Pluggable tax computation for purchase orders and POS sales.

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..money import ZERO

EXTENSION_KEY = "backoffice.tax"

CONTEXT_PURCHASE_ORDER = "purchase_order"
CONTEXT_POS = "pos"


class TaxStrategy:
    """Computes tax for one line. No jurisdiction or rule engine here."""

    def line_tax(self, line_total: Decimal, tax_rate: Decimal) -> Decimal:
        raise NotImplementedError


class RateTaxStrategy(TaxStrategy):
    """line_total x tax_rate."""

    def line_tax(self, line_total: Decimal, tax_rate: Decimal) -> Decimal:
        return line_total * tax_rate


class NoTaxStrategy(TaxStrategy):
    def line_tax(self, line_total: Decimal, tax_rate: Decimal) -> Decimal:
        return ZERO


DEFAULT_STRATEGIES = {
    CONTEXT_PURCHASE_ORDER: RateTaxStrategy,
    CONTEXT_POS: NoTaxStrategy,
}


def init_tax_strategies(app, overrides: dict[str, TaxStrategy] | None = None) -> dict[str, TaxStrategy]:
    strategies = {context: factory() for context, factory in DEFAULT_STRATEGIES.items()}
    strategies.update(overrides or {})
    app.extensions[EXTENSION_KEY] = strategies
    return strategies


def get_tax_strategy(context: str) -> TaxStrategy:
    strategies = current_app.extensions.get(EXTENSION_KEY, {})
    strategy = strategies.get(context)
    if strategy is None:
        return DEFAULT_STRATEGIES[context]()
    return strategy
