"""Tests for tax-rate updates and monthly net value recalculation."""

from __future__ import annotations

from datetime import date

import pytest

from src.ledger.sales.recalculation import NetValueRecalculator, month_bounds
from src.ledger.sales.schemas import SaleCreate, TaxRateUpdate


def _sale(organization_id: str, sale_date: date, gross: float, net: float) -> SaleCreate:
    return SaleCreate(
        organization_id=organization_id,
        client_name="Acme",
        gross_value=gross,
        net_value=net,
        commission_value=10.0,
        sale_date=sale_date,
    )


class TestMonthBounds:
    def test_regular_month(self):
        assert month_bounds("2026-04") == (date(2026, 4, 1), date(2026, 4, 30))

    def test_leap_february(self):
        assert month_bounds("2028-02") == (date(2028, 2, 1), date(2028, 2, 29))

    @pytest.mark.parametrize("period", ["2026", "2026-13", "abcd-ef", "2026-04-01"])
    def test_invalid(self, period):
        with pytest.raises(ValueError):
            month_bounds(period)


class TestNetValueRecalculator:
    @pytest.fixture
    def recalculator(self, sales_repo, clock) -> NetValueRecalculator:
        return NetValueRecalculator(sales_repo, clock=clock)

    async def test_update_tax_rate(self, recalculator, sales_repo, organization_id):
        organization = await recalculator.update_tax_rate(
            organization_id, TaxRateUpdate(tax_deduction_rate=15.0)
        )

        assert organization.tax_deduction_rate == 15.0
        assert sales_repo.organizations[organization_id].tax_deduction_rate == 15.0

    async def test_update_unknown_organization(self, recalculator):
        with pytest.raises(ValueError):
            await recalculator.update_tax_rate("missing", TaxRateUpdate(tax_deduction_rate=5))

    async def test_recalculates_only_the_period(
        self, recalculator, sales_repo, organization_id
    ):
        march = sales_repo.add_sale(_sale(organization_id, date(2026, 3, 5), 1000, 1000))
        february = sales_repo.add_sale(_sale(organization_id, date(2026, 2, 28), 1000, 1000))

        updated = await recalculator.recalculate(organization_id, "2026-03")

        assert updated == 1
        assert sales_repo.sales[march.id].net_value == 900.0
        assert sales_repo.sales[february.id].net_value == 1000

    async def test_default_period_is_current_month(
        self, recalculator, sales_repo, organization_id
    ):
        # clock is pinned to 2026-03-10
        sale = sales_repo.add_sale(_sale(organization_id, date(2026, 3, 31), 200, 200))

        updated = await recalculator.recalculate(organization_id)

        assert updated == 1
        assert sales_repo.sales[sale.id].net_value == 180.0

    async def test_unchanged_sales_not_rewritten(
        self, recalculator, sales_repo, organization_id
    ):
        sales_repo.add_sale(_sale(organization_id, date(2026, 3, 5), 1000, 900))

        assert await recalculator.recalculate(organization_id, "2026-03") == 0

    async def test_count_includes_only_changed_sales(
        self, recalculator, sales_repo, organization_id
    ):
        sales_repo.add_sale(_sale(organization_id, date(2026, 3, 5), 1000, 900))
        stale = sales_repo.add_sale(_sale(organization_id, date(2026, 3, 6), 500, 500))

        assert await recalculator.recalculate(organization_id, "2026-03") == 1
        assert sales_repo.sales[stale.id].net_value == 450.0

    async def test_commission_left_as_recorded(
        self, recalculator, sales_repo, organization_id
    ):
        sale = sales_repo.add_sale(_sale(organization_id, date(2026, 3, 5), 1000, 1000))

        await recalculator.recalculate(organization_id, "2026-03")

        assert sales_repo.sales[sale.id].commission_value == 10.0

    async def test_cleared_rate_restores_gross(
        self, recalculator, sales_repo, organization_id
    ):
        sale = sales_repo.add_sale(_sale(organization_id, date(2026, 3, 5), 1000, 900))
        await recalculator.update_tax_rate(organization_id, TaxRateUpdate(tax_deduction_rate=None))

        await recalculator.recalculate(organization_id, "2026-03")

        assert sales_repo.sales[sale.id].net_value == 1000

    async def test_unknown_organization(self, recalculator):
        with pytest.raises(ValueError, match="not found"):
            await recalculator.recalculate("missing", "2026-03")
