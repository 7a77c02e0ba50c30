"""Tests for payout dispatch from audit events to collaborator rails."""

from typing import Optional

from eth_account.signers.local import LocalAccount

from conftest import ArcadeDriver
from stellarcade.compensation.payouts import PayoutInstruction, PayoutRail


class RecordingRail:
    """In-memory rail that accepts each instruction id once."""

    def __init__(self, fail_on: Optional[str] = None) -> None:
        self.accepted: dict[str, PayoutInstruction] = {}
        self.fail_on = fail_on

    @property
    def rail_id(self) -> str:
        return "recording"

    def submit(self, instruction: PayoutInstruction) -> None:
        if instruction.instruction_id == self.fail_on:
            raise ConnectionError("rail unavailable")
        self.accepted.setdefault(instruction.instruction_id, instruction)


class TestRouting:
    def test_rail_satisfies_protocol(self) -> None:
        assert isinstance(RecordingRail(), PayoutRail)

    def test_award_and_join_produce_one_instruction_each(
        self, arcade: ArcadeDriver, user: LocalAccount, player: LocalAccount,
    ) -> None:
        arcade.define_badge(1, reward=200)
        arcade.award_badge(user.address, 1)
        arcade.create_tournament(1, entry_fee=50)
        arcade.join(player, 1)

        rail = RecordingRail()
        report = arcade.service.payout_dispatcher(rail).dispatch_pending()
        assert report.error is None
        assert len(report.dispatched) == 2

        reward, fee = report.dispatched
        assert reward.role == "reward"
        assert reward.collaborator == arcade.reward.address
        assert reward.subject == user.address
        assert reward.amount == 200
        assert fee.role == "fee"
        assert fee.collaborator == arcade.fee.address
        assert fee.subject == player.address
        assert fee.amount == 50
        assert report.skipped == arcade.service.event_log.count - 2

    def test_zero_amounts_not_routed(
        self, arcade: ArcadeDriver, user: LocalAccount, player: LocalAccount,
    ) -> None:
        arcade.define_badge(1, reward=0)
        arcade.award_badge(user.address, 1)
        arcade.create_tournament(1, entry_fee=0)
        arcade.join(player, 1)
        report = arcade.service.payout_dispatcher(RecordingRail()).dispatch_pending()
        assert report.dispatched == []

    def test_instruction_id_is_event_id(self, arcade: ArcadeDriver, user: LocalAccount) -> None:
        arcade.define_badge(1, reward=5)
        arcade.award_badge(user.address, 1)
        event = arcade.service.event_log.last_event
        instruction = arcade.service.payout_dispatcher(RecordingRail()).instruction_for(event)
        assert instruction.instruction_id == event.event_id
        assert instruction.ledger_sequence == event.ledger_sequence


class TestCursor:
    def test_second_pass_dispatches_only_new_events(
        self, arcade: ArcadeDriver, user: LocalAccount, other: LocalAccount,
    ) -> None:
        arcade.define_badge(1, reward=10)
        arcade.award_badge(user.address, 1)
        dispatcher = arcade.service.payout_dispatcher(RecordingRail())
        assert len(dispatcher.dispatch_pending().dispatched) == 1
        assert dispatcher.dispatch_pending().dispatched == []

        arcade.award_badge(other.address, 1)
        again = dispatcher.dispatch_pending()
        assert [i.subject for i in again.dispatched] == [other.address]
        assert dispatcher.cursor == arcade.service.event_log.count

    def test_failure_holds_cursor_at_failing_event(
        self, arcade: ArcadeDriver, user: LocalAccount, other: LocalAccount,
    ) -> None:
        arcade.define_badge(1, reward=10)
        arcade.award_badge(user.address, 1)
        failing_id = arcade.service.event_log.last_event.event_id
        arcade.award_badge(other.address, 1)

        rail = RecordingRail(fail_on=failing_id)
        dispatcher = arcade.service.payout_dispatcher(rail)
        report = dispatcher.dispatch_pending()
        assert report.error is not None
        assert failing_id in report.error
        assert report.dispatched == []
        held_at = dispatcher.cursor

        rail.fail_on = None
        retry = dispatcher.dispatch_pending()
        assert retry.error is None
        assert len(retry.dispatched) == 2
        assert dispatcher.cursor > held_at
        assert len(rail.accepted) == 2
