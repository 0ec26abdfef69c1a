"""Net value recalculation after an organization's tax-deduction rate changes.

Sales store the net value computed when they were recorded. Changing the
rate does not rewrite history on its own: the user recalculates one month at
a time. Commission values are left as recorded.
"""

from __future__ import annotations

import calendar
from datetime import date

import structlog

from src.ledger.core.clock import Clock, utc_now
from src.ledger.sales.commission import apply_tax_deduction
from src.ledger.sales.repository import SalesRepository
from src.ledger.sales.schemas import OrganizationRead, TaxRateUpdate

logger = structlog.get_logger(__name__)


def month_bounds(period: str) -> tuple[date, date]:
    """Return the first and last day of a "YYYY-MM" period.

    Raises:
        ValueError: If period is not a valid year-month.
    """
    try:
        year_str, month_str = period.split("-")
        year, month = int(year_str), int(month_str)
    except ValueError as exc:
        raise ValueError(f"Invalid period {period!r}, expected YYYY-MM") from exc
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid period {period!r}, month out of range")

    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last_day)


class NetValueRecalculator:
    """Recompute net values of a month's sales under the current tax rate.

    Args:
        sales: Organization and sale persistence.
        clock: Source of "now" for the default period.
    """

    def __init__(self, sales: SalesRepository, clock: Clock = utc_now) -> None:
        self._sales = sales
        self._clock = clock

    async def update_tax_rate(
        self, organization_id: str, update: TaxRateUpdate
    ) -> OrganizationRead:
        organization = await self._sales.update_tax_rate(
            organization_id, update.tax_deduction_rate
        )
        logger.info(
            "organizations.tax_rate_updated",
            organization_id=organization_id,
            tax_deduction_rate=update.tax_deduction_rate,
        )
        return organization

    async def recalculate(self, organization_id: str, period: str | None = None) -> int:
        """Rewrite net values for sales in period (default: current month).

        Returns:
            Number of sales whose net value changed.

        Raises:
            ValueError: Unknown organization or malformed period.
        """
        organization = await self._sales.get_organization(organization_id)
        if organization is None:
            raise ValueError(f"Organization not found: {organization_id}")

        period = period or self._clock().strftime("%Y-%m")
        start, end = month_bounds(period)

        changed: dict[str, float] = {}
        for sale in await self._sales.list_sales_between(organization_id, start, end):
            net_value = apply_tax_deduction(sale.gross_value, organization.tax_deduction_rate)
            if net_value != sale.net_value:
                changed[sale.id] = net_value

        updated = await self._sales.update_net_values(organization_id, changed)
        logger.info(
            "sales.net_values_recalculated",
            organization_id=organization_id,
            period=period,
            updated=updated,
        )
        return updated
