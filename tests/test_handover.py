import pytest

from foundit_ai.common.schemas import (HandoverRole, ItemStatus, Match,
                                       MatchStatus, ReportType)
from foundit_ai.handover.protocol import CLOSED_MESSAGE, CODE_MASK
from tests.conftest import _make_report, _verified_match


@pytest.fixture
def reports(store):
    lost = _make_report(store, type=ReportType.LOST, owner_id="u-owner")
    found = _make_report(store, type=ReportType.FOUND, owner_id="u-finder")
    return lost, found


@pytest.fixture
def verified(store, reports):
    return _verified_match(store, *reports)


class TestInitiate:

    def test_creates_handover_with_upper_case_code(self, store, channel, handover, verified):
        record = handover.initiate(verified.id)

        assert record is not None
        assert len(record.code) == 6
        assert record.code == record.code.upper()
        assert record.code.isalnum()
        assert not record.is_confirmed_by_owner
        assert not record.is_confirmed_by_finder
        assert store.get("handovers", verified.id) == record
        assert record.code in channel.history(verified.id)[-1].text

    def test_requires_verified_match(self, store, handover, reports):
        lost, found = reports
        pending = Match(lost_report_id=lost.id, found_report_id=found.id, confidence=80)
        store.put("matches", pending.id, pending)

        assert handover.initiate(pending.id) is None
        assert handover.get(pending.id) is None

    def test_rejected_match_cannot_hand_over(self, store, handover, reports):
        lost, found = reports
        rejected = Match(lost_report_id=lost.id, found_report_id=found.id, confidence=80,
                         status=MatchStatus.REJECTED, attempts=2)
        store.put("matches", rejected.id, rejected)
        assert handover.initiate(rejected.id) is None

    def test_second_initiate_returns_same_handover(self, channel, handover, verified):
        first = handover.initiate(verified.id)
        second = handover.initiate(verified.id)

        assert second.code == first.code
        assert len(channel.history(verified.id)) == 1

    def test_finder_view_shows_code_owner_view_does_not(self, handover, verified):
        record = handover.initiate(verified.id)

        assert handover.view_for(verified.id, HandoverRole.FINDER)["code"] == record.code
        assert handover.view_for(verified.id, HandoverRole.OWNER)["code"] is None


class TestConfirm:

    def test_wrong_code_never_mutates(self, store, handover, verified):
        record = handover.initiate(verified.id)

        assert handover.confirm(verified.id, "OWNER", "ZZZZZZ") is False
        assert handover.confirm(verified.id, "FINDER", "") is False

        assert store.get("handovers", verified.id) == record

    def test_finder_alone_does_not_close(self, store, handover, reports, verified):
        lost, found = reports
        record = handover.initiate(verified.id)

        assert handover.confirm(verified.id, HandoverRole.FINDER, record.code) is True

        assert store.get("handovers", verified.id).is_confirmed_by_finder
        assert store.get("reports", lost.id).status != ItemStatus.RETURNED
        assert store.get("reports", found.id).status != ItemStatus.RETURNED

    def test_owner_confirmation_returns_both_reports(self, store, channel, handover, reports, verified):
        lost, found = reports
        record = handover.initiate(verified.id)

        assert handover.confirm(verified.id, HandoverRole.OWNER, record.code) is True

        assert store.get("handovers", verified.id).is_confirmed_by_owner
        assert store.get("reports", lost.id).status == ItemStatus.RETURNED
        assert store.get("reports", found.id).status == ItemStatus.RETURNED
        assert channel.history(verified.id)[-1].text == CLOSED_MESSAGE
        assert channel.send_message(verified.id, "u-owner", "one more thing") is None

    def test_code_is_case_insensitive(self, store, handover, verified):
        record = handover.initiate(verified.id)
        assert handover.confirm(verified.id, "OWNER", f"  {record.code.lower()} ") is True

    def test_closing_message_appended_once(self, channel, handover, verified):
        record = handover.initiate(verified.id)
        handover.confirm(verified.id, "OWNER", record.code)
        handover.confirm(verified.id, "FINDER", record.code)
        handover.confirm(verified.id, "OWNER", record.code)

        closing = [m for m in channel.history(verified.id) if m.text == CLOSED_MESSAGE]
        assert len(closing) == 1

    def test_no_handover_to_confirm(self, handover, verified):
        assert handover.confirm(verified.id, "OWNER", "ABC123") is False

    def test_cannot_initiate_on_closed_case(self, store, handover, reports, verified):
        lost, found = reports
        store.put("reports", found.id, found.model_copy(update={"status": ItemStatus.RETURNED}))

        assert handover.initiate(verified.id) is None
        assert handover.get(verified.id) is None

    def test_placeholder_match_returns_concrete_report_only(self, store, handover):
        found = _make_report(store, type=ReportType.FOUND, owner_id="u-finder")
        match = Match(lost_report_id="PENDING_OWNER_REPORT", found_report_id=found.id,
                      confidence=100, status=MatchStatus.VERIFIED, claimant_id="u-owner")
        store.put("matches", match.id, match)
        record = handover.initiate(match.id)

        assert handover.confirm(match.id, "OWNER", record.code) is True
        assert store.get("reports", found.id).status == ItemStatus.RETURNED


class TestRedaction:

    def test_owner_history_masks_code(self, channel, handover, verified):
        record = handover.initiate(verified.id)
        channel.send_message(verified.id, "u-owner", "on my way")

        owner_copy = handover.redact_for(verified.id, HandoverRole.OWNER, channel.history(verified.id))

        assert all(record.code not in m.text for m in owner_copy)
        assert CODE_MASK in owner_copy[0].text
        assert owner_copy[1].text == "on my way"

    def test_finder_history_keeps_code(self, channel, handover, verified):
        record = handover.initiate(verified.id)
        finder_copy = handover.redact_for(verified.id, HandoverRole.FINDER, channel.history(verified.id))
        assert record.code in finder_copy[0].text

    def test_stored_message_is_untouched(self, channel, handover, verified):
        record = handover.initiate(verified.id)
        handover.redact_for(verified.id, "OWNER", channel.history(verified.id))
        assert record.code in channel.history(verified.id)[0].text

    def test_nothing_to_mask_before_initiation(self, channel, handover, verified):
        channel.send_message(verified.id, "u-owner", "hello")
        history = channel.history(verified.id)
        assert handover.redact_for(verified.id, "OWNER", history) == history
