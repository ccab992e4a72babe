import pytest

from roadwatch.models import Citizen, ReportStatus, StatusUpdate, TransactionType
from roadwatch.services import (
    CitizenNotFoundError,
    InsufficientPointsError,
    ReportingError,
    audit_ledger,
)


async def approve_reports(lifecycle, citizen_id, make_payload, clock, count):
    for i in range(count):
        report = await lifecycle.submit_report(citizen_id, make_payload(north_m=i * 500))
        await lifecycle.update_status(report.id, StatusUpdate(status=ReportStatus.APPROVED), "officer-7")
        clock.advance(minutes=1)


class TestRewards:

    async def test_summary_for_new_citizen(self, rewards, citizen):
        summary = await rewards.get_rewards(citizen.id)
        assert summary.total_points == 0
        assert summary.accuracy_rate == 0
        assert summary.recent_transactions == []

    async def test_summary_lists_recent_transactions_newest_first(
        self, rewards, lifecycle, citizen, make_payload, clock
    ):
        rewards.settings.recent_transactions_limit = 2
        await approve_reports(lifecycle, citizen.id, make_payload, clock, 3)

        summary = await rewards.get_rewards(citizen.id)
        assert summary.total_points == 450
        assert summary.reports_approved == 3
        assert len(summary.recent_transactions) == 2
        assert [t.balance_after for t in summary.recent_transactions] == [450, 300]

    async def test_unknown_citizen(self, rewards):
        with pytest.raises(CitizenNotFoundError):
            await rewards.get_rewards("nobody")


class TestRedemption:

    async def test_redeem_updates_balance_and_ledger(
        self, rewards, lifecycle, citizen, make_payload, clock
    ):
        await approve_reports(lifecycle, citizen.id, make_payload, clock, 1)
        txn = await rewards.redeem_points(citizen.id, 100, "Parking voucher")

        assert txn.type == TransactionType.REDEEM
        assert txn.points == -100
        assert txn.balance_after == 50
        assert txn.description == "Parking voucher"

        summary = await rewards.get_rewards(citizen.id)
        assert summary.total_points == 50
        assert summary.points_earned == 150
        assert summary.points_redeemed == 100

    async def test_cannot_redeem_more_than_balance(self, rewards, lifecycle, citizen, make_payload, clock):
        await approve_reports(lifecycle, citizen.id, make_payload, clock, 1)
        with pytest.raises(InsufficientPointsError):
            await rewards.redeem_points(citizen.id, 151)

        summary = await rewards.get_rewards(citizen.id)
        assert summary.total_points == 150
        assert len(summary.recent_transactions) == 1

    async def test_points_must_be_positive(self, rewards, citizen):
        with pytest.raises(ReportingError) as excinfo:
            await rewards.redeem_points(citizen.id, 0)
        assert excinfo.type is ReportingError
        assert excinfo.value.status_code == 400


class TestLedgerAudit:

    def test_detects_balance_drift(self, clock):
        citizen = Citizen(id="c", total_points=200, points_earned=150)
        issues = audit_ledger(citizen, [])
        assert "total_points 200, ledger sums to 0" in issues
        assert "points_earned 150, ledger earned 0" in issues

    async def test_consistent_after_earn_and_redeem(
        self, rewards, lifecycle, citizen, make_payload, clock, storage
    ):
        await approve_reports(lifecycle, citizen.id, make_payload, clock, 2)
        await rewards.redeem_points(citizen.id, 75)

        async with storage.transaction() as session:
            current = await session.citizens.find_by_id(citizen.id)
            ledger = await session.ledger.list_for_citizen(citizen.id)
        assert audit_ledger(current, ledger) == []
