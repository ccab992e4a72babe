import pytest

from roadwatch.models import (
    ReportEventType,
    ReportStatus,
    StatusUpdate,
    TransactionType,
    ViolationType,
)
from roadwatch.services import (
    ALLOWED_TRANSITIONS,
    CitizenNotFoundError,
    DailyLimitExceededError,
    InvalidTransitionError,
    ReportNotFoundError,
    ReportingError,
    audit_ledger,
    can_transition,
)
from roadwatch.storage.memory import MemoryLedgerRepository

APPROVE = StatusUpdate(status=ReportStatus.APPROVED, review_notes="Verified from footage")
REJECT = StatusUpdate(status=ReportStatus.REJECTED, review_notes="Plate not visible")


async def load_citizen(storage, citizen_id):
    async with storage.transaction() as session:
        return await session.citizens.find_by_id(citizen_id)


async def load_ledger(storage, citizen_id):
    async with storage.transaction() as session:
        return await session.ledger.list_for_citizen(citizen_id)


class TestTransitionTable:

    def test_terminal_states(self):
        assert ALLOWED_TRANSITIONS[ReportStatus.APPROVED] == frozenset()
        assert ALLOWED_TRANSITIONS[ReportStatus.DUPLICATE] == frozenset()

    def test_allowed_and_forbidden(self):
        assert can_transition(ReportStatus.PENDING, ReportStatus.UNDER_REVIEW)
        assert can_transition(ReportStatus.UNDER_REVIEW, ReportStatus.APPROVED)
        assert can_transition(ReportStatus.REJECTED, ReportStatus.DUPLICATE)
        assert not can_transition(ReportStatus.PENDING, ReportStatus.PENDING)
        assert not can_transition(ReportStatus.APPROVED, ReportStatus.APPROVED)
        assert not can_transition(ReportStatus.APPROVED, ReportStatus.DUPLICATE)
        assert not can_transition(ReportStatus.REJECTED, ReportStatus.APPROVED)
        assert not can_transition(ReportStatus.UNDER_REVIEW, ReportStatus.PENDING)


class TestSubmission:

    async def test_submit_creates_pending_report(self, lifecycle, citizen, make_payload, storage):
        report = await lifecycle.submit_report(
            citizen.id, make_payload(vehicle_number="KA05MN4321")
        )

        assert report.status == ReportStatus.PENDING
        assert report.citizen_id == citizen.id
        assert report.violation_type == ViolationType.SIGNAL_JUMPING
        assert report.points_awarded == 0
        assert report.vehicle_number == "KA05MN4321"

        updated = await load_citizen(storage, citizen.id)
        assert updated.reports_submitted == 1
        assert updated.reports_approved == 0
        assert updated.accuracy_rate == 0

    async def test_submit_logs_event_with_decision(self, lifecycle, event_service, citizen, make_payload):
        report = await lifecycle.submit_report(citizen.id, make_payload())
        events = await event_service.list_events(report.id)

        assert [e.type for e in events] == [ReportEventType.REPORT_SUBMITTED]
        assert events[0].metadata["is_duplicate"] is False
        assert events[0].metadata["duplicate_group_id"] is None
        assert events[0].citizen_id == citizen.id

    async def test_unknown_citizen(self, lifecycle, make_payload):
        with pytest.raises(CitizenNotFoundError):
            await lifecycle.submit_report("nobody", make_payload())

    async def test_daily_limit(self, lifecycle, citizen, make_payload, clock, storage):
        lifecycle.settings.submission.max_reports_per_day = 2
        await lifecycle.submit_report(citizen.id, make_payload(north_m=0))
        await lifecycle.submit_report(citizen.id, make_payload(north_m=500))

        with pytest.raises(DailyLimitExceededError):
            await lifecycle.submit_report(citizen.id, make_payload(north_m=1000))
        assert (await load_citizen(storage, citizen.id)).reports_submitted == 2

        # Counter resets at UTC midnight
        clock.advance(days=1)
        report = await lifecycle.submit_report(citizen.id, make_payload(north_m=1000))
        assert report.status == ReportStatus.PENDING

    async def test_multiple_violation_types_deduplicated(self, lifecycle, citizen, make_payload):
        report = await lifecycle.submit_report(
            citizen.id,
            make_payload(violation_types=[
                ViolationType.SPEED_VIOLATION,
                ViolationType.MOBILE_PHONE_USAGE,
                ViolationType.SPEED_VIOLATION,
            ]),
        )
        assert report.violation_type == ViolationType.SPEED_VIOLATION
        assert report.violation_types == [ViolationType.SPEED_VIOLATION, ViolationType.MOBILE_PHONE_USAGE]


class TestApproval:

    async def test_first_reporter_gets_bonus(self, lifecycle, citizen, make_payload, storage):
        report = await lifecycle.submit_report(citizen.id, make_payload())
        approved = await lifecycle.update_status(report.id, APPROVE, "officer-7")

        assert approved.status == ReportStatus.APPROVED
        assert approved.points_awarded == 150
        assert approved.is_first_reporter is True
        assert approved.reviewer_id == "officer-7"
        assert approved.review_timestamp is not None
        assert approved.review_notes == "Verified from footage"

        updated = await load_citizen(storage, citizen.id)
        assert updated.reports_approved == 1
        assert updated.points_earned == 150
        assert updated.total_points == 150
        assert updated.accuracy_rate == pytest.approx(1.0)

        ledger = await load_ledger(storage, citizen.id)
        assert len(ledger) == 1
        assert ledger[0].type == TransactionType.EARN
        assert ledger[0].points == 150
        assert ledger[0].balance_after == 150
        assert ledger[0].report_id == report.id

    async def test_later_report_near_approved_gets_base_only(
        self, lifecycle, citizen, other_citizen, make_payload, clock, storage
    ):
        first = await lifecycle.submit_report(citizen.id, make_payload())
        await lifecycle.update_status(first.id, APPROVE, "officer-7")

        clock.advance(minutes=10)
        second = await lifecycle.submit_report(other_citizen.id, make_payload(north_m=60, minutes=12))
        approved = await lifecycle.update_status(second.id, APPROVE, "officer-7")

        assert approved.points_awarded == 100
        assert approved.is_first_reporter is False
        assert (await load_citizen(storage, other_citizen.id)).total_points == 100

    async def test_approved_report_of_other_type_does_not_block_bonus(
        self, lifecycle, citizen, other_citizen, make_payload, clock
    ):
        first = await lifecycle.submit_report(
            citizen.id, make_payload(violation_types=[ViolationType.NO_PARKING_ZONE])
        )
        await lifecycle.update_status(first.id, APPROVE, "officer-7")

        clock.advance(minutes=1)
        second = await lifecycle.submit_report(other_citizen.id, make_payload(north_m=10))
        approved = await lifecycle.update_status(second.id, APPROVE, "officer-7")
        assert approved.points_awarded == 150

    async def test_accuracy_rate_is_ratio(self, lifecycle, citizen, make_payload, storage):
        first = await lifecycle.submit_report(citizen.id, make_payload())
        await lifecycle.submit_report(citizen.id, make_payload(north_m=500))
        await lifecycle.update_status(first.id, APPROVE, "officer-7")

        updated = await load_citizen(storage, citizen.id)
        assert updated.reports_submitted == 2
        assert updated.reports_approved == 1
        assert updated.accuracy_rate == pytest.approx(0.5)

    async def test_points_scale_with_violation_count_when_enabled(self, lifecycle, citizen, make_payload):
        lifecycle.settings.points.scale_points_by_violation_count = True
        report = await lifecycle.submit_report(
            citizen.id,
            make_payload(violation_types=[ViolationType.SPEED_VIOLATION, ViolationType.LANE_CUTTING]),
        )
        approved = await lifecycle.update_status(report.id, APPROVE, "officer-7")
        assert approved.points_awarded == 250

    async def test_reapproval_is_rejected(self, lifecycle, citizen, make_payload, storage):
        report = await lifecycle.submit_report(citizen.id, make_payload())
        await lifecycle.update_status(report.id, APPROVE, "officer-7")

        with pytest.raises(InvalidTransitionError):
            await lifecycle.update_status(report.id, APPROVE, "officer-8")

        updated = await load_citizen(storage, citizen.id)
        assert updated.total_points == 150
        assert updated.reports_approved == 1
        assert len(await load_ledger(storage, citizen.id)) == 1

    async def test_approved_cannot_become_duplicate(self, lifecycle, citizen, make_payload):
        report = await lifecycle.submit_report(citizen.id, make_payload())
        await lifecycle.update_status(report.id, APPROVE, "officer-7")
        with pytest.raises(InvalidTransitionError):
            await lifecycle.update_status(report.id, StatusUpdate(status=ReportStatus.DUPLICATE), "officer-7")

    async def test_events_in_order(self, lifecycle, event_service, citizen, make_payload):
        report = await lifecycle.submit_report(citizen.id, make_payload())
        await lifecycle.update_status(
            report.id, StatusUpdate(status=ReportStatus.UNDER_REVIEW), "officer-7"
        )
        await lifecycle.update_status(report.id, APPROVE, "officer-7")

        events = await event_service.list_events(report.id)
        assert [e.type for e in events] == [
            ReportEventType.REPORT_SUBMITTED,
            ReportEventType.STATUS_UPDATED,
            ReportEventType.STATUS_UPDATED,
            ReportEventType.POINTS_AWARDED,
        ]
        assert events[2].metadata == {
            "old_status": "UNDER_REVIEW",
            "new_status": "APPROVED",
            "reviewer_id": "officer-7",
        }
        assert events[3].metadata["points"] == 150

    async def test_approval_rolls_back_when_ledger_write_fails(
        self, lifecycle, event_service, citizen, make_payload, storage, monkeypatch
    ):
        report = await lifecycle.submit_report(citizen.id, make_payload())

        async def broken_append(self, data):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(MemoryLedgerRepository, "append", broken_append)
        with pytest.raises(RuntimeError):
            await lifecycle.update_status(report.id, APPROVE, "officer-7")

        stored = await lifecycle.get_report(report.id)
        assert stored.status == ReportStatus.PENDING
        assert stored.points_awarded == 0
        updated = await load_citizen(storage, citizen.id)
        assert updated.total_points == 0
        assert updated.reports_approved == 0
        events = await event_service.list_events(report.id)
        assert [e.type for e in events] == [ReportEventType.REPORT_SUBMITTED]


class TestOtherTransitions:

    async def test_rejection_changes_no_points(self, lifecycle, citizen, make_payload, storage):
        report = await lifecycle.submit_report(citizen.id, make_payload())
        rejected = await lifecycle.update_status(report.id, REJECT, "officer-7")

        assert rejected.status == ReportStatus.REJECTED
        assert rejected.points_awarded == 0
        assert rejected.review_timestamp is not None

        updated = await load_citizen(storage, citizen.id)
        assert updated.total_points == 0
        assert updated.reports_approved == 0
        assert updated.reports_submitted == 1
        assert await load_ledger(storage, citizen.id) == []

    async def test_under_review_sets_reviewer_without_timestamp(self, lifecycle, citizen, make_payload):
        report = await lifecycle.submit_report(citizen.id, make_payload())
        reviewing = await lifecycle.update_status(
            report.id, StatusUpdate(status=ReportStatus.UNDER_REVIEW), "officer-7"
        )
        assert reviewing.status == ReportStatus.UNDER_REVIEW
        assert reviewing.reviewer_id == "officer-7"
        assert reviewing.review_timestamp is None

    async def test_challan_fields_recorded(self, lifecycle, citizen, make_payload):
        report = await lifecycle.submit_report(citizen.id, make_payload())
        approved = await lifecycle.update_status(
            report.id,
            StatusUpdate(status=ReportStatus.APPROVED, challan_issued=True, challan_number="CH-2024-0042"),
            "officer-7",
        )
        assert approved.challan_issued is True
        assert approved.challan_number == "CH-2024-0042"

    async def test_manual_duplicate_joins_group_of_original(
        self, lifecycle, citizen, other_citizen, make_payload, clock
    ):
        original = await lifecycle.submit_report(citizen.id, make_payload())
        clock.advance(minutes=30)
        # Too far apart to be caught automatically
        late = await lifecycle.submit_report(other_citizen.id, make_payload(north_m=90, minutes=20))
        assert late.is_duplicate is False

        marked = await lifecycle.update_status(
            late.id,
            StatusUpdate(status=ReportStatus.DUPLICATE, duplicate_of=original.id),
            "officer-7",
        )
        assert marked.status == ReportStatus.DUPLICATE
        assert marked.is_duplicate is True
        assert marked.duplicate_group_id == str(original.id)
        assert marked.review_timestamp is not None

        group = await lifecycle.get_duplicate_group(str(original.id))
        assert [r.id for r in group] == [original.id, late.id]

    async def test_regrouping_canonical_moves_its_members(
        self, lifecycle, citizen, other_citizen, make_payload, clock
    ):
        anchor = await lifecycle.submit_report(citizen.id, make_payload())
        clock.advance(minutes=2)
        member = await lifecycle.submit_report(other_citizen.id, make_payload(north_m=30, minutes=1))
        assert member.duplicate_group_id == str(anchor.id)
        clock.advance(minutes=30)
        target = await lifecycle.submit_report(citizen.id, make_payload(north_m=500))
        assert target.is_duplicate is False

        await lifecycle.update_status(
            anchor.id,
            StatusUpdate(status=ReportStatus.DUPLICATE, duplicate_of=target.id),
            "officer-7",
        )

        moved = await lifecycle.get_report(member.id)
        assert moved.is_duplicate is True
        assert moved.duplicate_group_id == str(target.id)

        group = await lifecycle.get_duplicate_group(str(target.id))
        assert [r.id for r in group] == [anchor.id, member.id, target.id]
        assert await lifecycle.get_duplicate_group(str(anchor.id)) == []

    async def test_canonical_marked_duplicate_of_own_member_keeps_group(
        self, lifecycle, citizen, other_citizen, make_payload, clock
    ):
        anchor = await lifecycle.submit_report(citizen.id, make_payload())
        clock.advance(minutes=2)
        member = await lifecycle.submit_report(other_citizen.id, make_payload(north_m=30, minutes=1))

        marked = await lifecycle.update_status(
            anchor.id,
            StatusUpdate(status=ReportStatus.DUPLICATE, duplicate_of=member.id),
            "officer-7",
        )
        assert marked.duplicate_group_id == str(anchor.id)

        group = await lifecycle.get_duplicate_group(str(anchor.id))
        assert [r.id for r in group] == [anchor.id, member.id]

    async def test_rejected_can_become_duplicate(self, lifecycle, citizen, make_payload):
        report = await lifecycle.submit_report(citizen.id, make_payload())
        await lifecycle.update_status(report.id, REJECT, "officer-7")
        marked = await lifecycle.update_status(
            report.id, StatusUpdate(status=ReportStatus.DUPLICATE), "officer-7"
        )
        assert marked.status == ReportStatus.DUPLICATE

    async def test_duplicate_of_self_is_refused(self, lifecycle, citizen, make_payload):
        report = await lifecycle.submit_report(citizen.id, make_payload())
        with pytest.raises(ReportingError):
            await lifecycle.update_status(
                report.id,
                StatusUpdate(status=ReportStatus.DUPLICATE, duplicate_of=report.id),
                "officer-7",
            )
        assert (await lifecycle.get_report(report.id)).status == ReportStatus.PENDING

    async def test_unknown_report(self, lifecycle):
        with pytest.raises(ReportNotFoundError):
            await lifecycle.update_status(999, APPROVE, "officer-7")


class TestListing:

    async def test_review_queue_filters_by_status_newest_first(
        self, lifecycle, citizen, other_citizen, make_payload, clock
    ):
        ids = []
        for i, owner in enumerate([citizen, other_citizen, citizen]):
            report = await lifecycle.submit_report(owner.id, make_payload(north_m=i * 500))
            ids.append(report.id)
            clock.advance(minutes=1)
        await lifecycle.update_status(ids[1], REJECT, "officer-7")

        pending = await lifecycle.list_reports(status=ReportStatus.PENDING)
        assert [r.id for r in pending] == [ids[2], ids[0]]

        page = await lifecycle.list_reports(limit=2, offset=1)
        assert [r.id for r in page] == [ids[1], ids[0]]

    async def test_citizen_history_and_type_filter(
        self, lifecycle, citizen, other_citizen, make_payload
    ):
        mine = await lifecycle.submit_report(citizen.id, make_payload())
        await lifecycle.submit_report(other_citizen.id, make_payload(north_m=500))
        lane = await lifecycle.submit_report(
            citizen.id, make_payload(north_m=1000, violation_types=[ViolationType.LANE_CUTTING])
        )

        history = await lifecycle.list_reports(citizen_id=citizen.id)
        assert {r.id for r in history} == {mine.id, lane.id}

        lane_only = await lifecycle.list_reports(violation_type=ViolationType.LANE_CUTTING)
        assert [r.id for r in lane_only] == [lane.id]

    async def test_unknown_citizen_history(self, lifecycle):
        with pytest.raises(CitizenNotFoundError):
            await lifecycle.list_reports(citizen_id="nobody")


class TestLedgerConsistency:

    async def test_ledger_replay_matches_balance(
        self, lifecycle, rewards, citizen, make_payload, clock, storage
    ):
        for i in range(3):
            report = await lifecycle.submit_report(citizen.id, make_payload(north_m=i * 500))
            await lifecycle.update_status(report.id, APPROVE, "officer-7")
            clock.advance(minutes=1)
        await rewards.redeem_points(citizen.id, 120, "Fuel voucher")

        updated = await load_citizen(storage, citizen.id)
        ledger = await load_ledger(storage, citizen.id)
        assert updated.total_points == 450 - 120
        assert sum(t.points for t in ledger) == updated.total_points
        assert audit_ledger(updated, ledger) == []
