"""
Tests for the match history aggregator.
"""

from datetime import date, timedelta

import pytest

from rapprochement.integrations import InMemoryMatchRecordSource
from rapprochement.matching import MatchHistoryAggregator
from rapprochement.models import (
    BankMatchRecord,
    EntityKind,
    HistorySource,
    InvoiceRecord,
    MatchProvenance,
    PaymentRecord,
)


class FailingInvoices(InMemoryMatchRecordSource):
    async def invoices_by_party_name(self, name, limit):
        raise ConnectionError("invoice service down")


class FailingPayments(InMemoryMatchRecordSource):
    async def payments_for_entity(self, kind, entity_id):
        raise TimeoutError("payments timed out")


def bank_match(match_id, day=1, **links):
    return BankMatchRecord(
        id=match_id,
        transaction_date=date(2024, 9, day),
        label=f"PRLV {match_id}",
        amount_cents=-4999,
        **links,
    )


def invoice(invoice_id, issuer, recipient="Ma Société", day=1):
    return InvoiceRecord(
        id=invoice_id,
        number=f"F-{invoice_id}",
        issue_date=date(2024, 1, 1) + timedelta(days=day),
        issuer_name=issuer,
        recipient_name=recipient,
        total_cents=12000,
    )


@pytest.fixture
def records():
    return InMemoryMatchRecordSource(
        bank_matches=[
            bank_match("bm-1", day=2, subscription_id="sub-1"),
            bank_match("bm-2", day=9, subscription_id="sub-1"),
            bank_match("bm-3", day=5, declaration_id="decl-1"),
            bank_match("bm-4", day=3, invoice_id="inv-1"),
            bank_match("bm-5", day=4, invoice_id="inv-9"),
        ],
        invoices=[
            invoice("inv-1", "Orange Business"),
            invoice("inv-2", "Ma Société", recipient="ORANGE SA", day=10),
            invoice("inv-9", "Bouygues"),
        ],
        payments=[
            PaymentRecord(
                id="pay-1",
                entity_kind=EntityKind.SUBSCRIPTION,
                entity_id="sub-1",
                payment_date=date(2024, 9, 2),
                amount_cents=4999,
            ),
        ],
    )


@pytest.fixture
def aggregator(records):
    return MatchHistoryAggregator(records, invoice_limit=20, display_limit=10)


class TestDirectLinks:
    """Subscriptions and declarations use the foreign key on bank matches."""

    @pytest.mark.asyncio
    async def test_subscription_history(self, aggregator):
        result = await aggregator.history(EntityKind.SUBSCRIPTION, "sub-1", "Orange Pro")

        assert [i.record.id for i in result.bank_matches.items] == ["bm-2", "bm-1"]
        assert all(i.provenance == MatchProvenance.DIRECT_LINK for i in result.bank_matches.items)
        assert [i.record.id for i in result.payments.items] == ["pay-1"]
        assert result.invoices.total == 0
        assert result.failed_sources == []
        assert result.total == 3

    @pytest.mark.asyncio
    async def test_declaration_history(self, aggregator):
        result = await aggregator.history(EntityKind.DECLARATION, "decl-1", "DSN")

        assert [i.record.id for i in result.bank_matches.items] == ["bm-3"]
        assert result.payments.total == 0

    @pytest.mark.asyncio
    async def test_failing_payments_degrade(self):
        records = FailingPayments(bank_matches=[bank_match("bm-1", subscription_id="sub-1")])
        aggregator = MatchHistoryAggregator(records, invoice_limit=20, display_limit=10)

        result = await aggregator.history(EntityKind.SUBSCRIPTION, "sub-1", "Orange Pro")

        assert result.failed_sources == [HistorySource.PAYMENT]
        assert result.bank_matches.total == 1


class TestNameFallback:
    """Other kinds go through invoices naming the entity."""

    @pytest.mark.asyncio
    async def test_invoices_and_their_bank_matches(self, aggregator):
        result = await aggregator.history(EntityKind.GENERAL_SUPPLIER, "sup-1", "orange")

        assert [i.record.id for i in result.invoices.items] == ["inv-2", "inv-1"]
        assert [i.record.id for i in result.bank_matches.items] == ["bm-4"]
        assert all(
            i.provenance == MatchProvenance.NAME_FALLBACK
            for i in result.bank_matches.items + result.invoices.items
        )
        assert result.payments.total == 0

    @pytest.mark.asyncio
    async def test_no_invoice_no_bank_match(self, aggregator):
        result = await aggregator.history(EntityKind.CLIENT, "cli-1", "Inconnu SARL")

        assert result.total == 0
        assert not result.has_data
        assert result.failed_sources == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "   "])
    async def test_blank_name(self, aggregator, name):
        result = await aggregator.history(EntityKind.EMPLOYEE, "sal-1", name)
        assert result.total == 0

    @pytest.mark.asyncio
    async def test_invoice_source_failure(self):
        records = FailingInvoices(bank_matches=[bank_match("bm-4", invoice_id="inv-1")])
        aggregator = MatchHistoryAggregator(records, invoice_limit=20, display_limit=10)

        result = await aggregator.history(EntityKind.CONTRACTOR, "pre-1", "Orange")

        assert result.failed_sources == [HistorySource.BANK_MATCH, HistorySource.INVOICE]
        assert result.total == 0


class TestLimits:
    """Invoice fetch limit and display truncation."""

    @pytest.mark.asyncio
    async def test_invoice_limit_and_display_limit(self):
        invoices = [invoice(f"inv-{n}", "Orange", day=n) for n in range(30)]
        matches = [bank_match(f"bm-{n}", day=1 + n % 28, invoice_id=f"inv-{n}") for n in range(30)]
        aggregator = MatchHistoryAggregator(
            InMemoryMatchRecordSource(bank_matches=matches, invoices=invoices),
            invoice_limit=20,
            display_limit=10,
        )

        result = await aggregator.history(EntityKind.SERVICE_SUPPLIER, "sup-1", "Orange")

        assert result.invoices.total == 20
        assert len(result.invoices.items) == 10
        assert result.invoices.hidden == 10
        # Only the 20 most recent invoices are followed to their bank matches
        assert result.bank_matches.total == 20
        assert len(result.bank_matches.items) == 10
        assert result.invoices.items[0].record.id == "inv-29"

    @pytest.mark.asyncio
    async def test_zero_display_limit_is_kept(self, records):
        aggregator = MatchHistoryAggregator(records, invoice_limit=20, display_limit=0)

        result = await aggregator.history(EntityKind.SUBSCRIPTION, "sub-1", "Orange Pro")

        assert aggregator.display_limit == 0
        assert result.bank_matches.items == []
        assert result.bank_matches.total == 2
        assert result.bank_matches.hidden == 2

    @pytest.mark.asyncio
    async def test_zero_invoice_limit_is_kept(self, records):
        aggregator = MatchHistoryAggregator(records, invoice_limit=0, display_limit=10)

        result = await aggregator.history(EntityKind.GENERAL_SUPPLIER, "sup-1", "orange")

        assert aggregator.invoice_limit == 0
        assert result.invoices.total == 0
        assert result.bank_matches.total == 0

    @pytest.mark.asyncio
    async def test_to_dict(self, aggregator):
        data = (await aggregator.history(EntityKind.SUBSCRIPTION, "sub-1", "Orange Pro")).to_dict()

        assert data["entity_kind"] == "abonnement"
        assert data["bank_matches"]["total"] == 2
        assert data["bank_matches"]["items"][0]["provenance"] == "direct_link"
        assert data["failed_sources"] == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
