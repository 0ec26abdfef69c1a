"""Commission & tax engine -- pure monetary computations.

apply_tax_deduction() turns a gross amount into the net, taxable amount under
an organization's deduction rate. compute_commission() applies a seller's flat
or tiered rule to that net amount. Both round to cents and nothing else.

Preconditions: the deduction rate is within [0, 100] (enforced upstream by
TaxRateUpdate) and tiered brackets do not overlap (enforced by whoever
authors the rule).
"""

from __future__ import annotations

from src.ledger.sales.schemas import CommissionRule, CommissionRuleType


def _to_cents(amount: float) -> float:
    return round(amount, 2)


def apply_tax_deduction(gross_value: float, rate_percent: float | None) -> float:
    """Return gross_value reduced by rate_percent (None means no deduction).

    >>> apply_tax_deduction(1000, 10)
    900.0
    """
    rate = rate_percent or 0.0
    return _to_cents(gross_value * (1 - rate / 100))


def select_percentage(net_value: float, rule: CommissionRule) -> float:
    """Pick the percentage a rule assigns to net_value.

    Tiered rules use the first bracket containing the value; a value outside
    every bracket earns nothing.
    """
    if rule.type == CommissionRuleType.FLAT:
        return rule.percentage or 0.0

    for bracket in rule.brackets:
        if bracket.contains(net_value):
            return bracket.percentage
    return 0.0


def compute_commission(net_value: float, rule: CommissionRule | None) -> float:
    """Commission earned on net_value under rule (0 when the seller has no rule)."""
    if rule is None:
        return 0.0
    return _to_cents(net_value * select_percentage(net_value, rule) / 100)
