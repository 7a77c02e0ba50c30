"""Tests for tournaments: creation, joining, scoring and finalization."""

from eth_account.signers.local import LocalAccount

from conftest import ArcadeDriver, make_hash
from stellarcade.errors import ErrorCode
from stellarcade.models.tournament import TournamentStatus
from stellarcade.persistence.event_log import EventKind
from stellarcade.persistence.keys import DataKey


class TestCreateTournament:
    def test_create_active(self, arcade: ArcadeDriver) -> None:
        result = arcade.create_tournament(1, entry_fee=50, rules=make_hash(9))
        assert result.success
        assert result.data["status"] == "active"
        record = arcade.service.get_tournament(1)
        assert record.status == TournamentStatus.ACTIVE
        assert record.entry_fee == 50
        assert record.rules_hash == make_hash(9)

    def test_negative_fee_is_invalid_amount(self, arcade: ArcadeDriver) -> None:
        result = arcade.create_tournament(1, entry_fee=-1)
        assert result.error_code == ErrorCode.INVALID_AMOUNT
        assert arcade.service.get_tournament(1) is None

    def test_duplicate_id(self, arcade: ArcadeDriver) -> None:
        arcade.create_tournament(1, entry_fee=50)
        result = arcade.create_tournament(1, entry_fee=10)
        assert result.error_code == ErrorCode.ALREADY_EXISTS
        assert arcade.service.get_tournament(1).entry_fee == 50

    def test_non_admin_rejected(self, arcade: ArcadeDriver, other: LocalAccount) -> None:
        result = arcade.create_tournament(1, caller=other)
        assert result.error_code == ErrorCode.NOT_AUTHORIZED

    def test_hex_rules_hash_accepted(self, arcade: ArcadeDriver) -> None:
        rules = make_hash(4)
        args = {"tournament_id": 5, "rules_hash": rules, "entry_fee": 0}
        proof = arcade.proof(arcade.admin, "create_tournament", args)
        result = arcade.service.create_tournament(
            arcade.admin.address, 5, "0x" + rules.hex(), 0, proof,
        )
        assert result.success
        assert arcade.service.get_tournament(5).rules_hash == rules


class TestJoinTournament:
    def test_join_marks_player(self, arcade: ArcadeDriver, player: LocalAccount) -> None:
        arcade.create_tournament(1, entry_fee=50)
        result = arcade.join(player, 1)
        assert result.success
        assert result.data["entry_fee"] == 50
        assert arcade.service.is_joined(1, player.address)
        event = arcade.service.event_log.last_event
        assert event.event_kind == EventKind.PLAYER_JOINED
        assert event.actor_id == player.address
        assert event.payload["amount"] == 50

    def test_join_twice(self, arcade: ArcadeDriver, player: LocalAccount) -> None:
        arcade.create_tournament(1)
        arcade.join(player, 1)
        result = arcade.join(player, 1)
        assert result.error_code == ErrorCode.ALREADY_JOINED

    def test_join_missing_tournament(self, arcade: ArcadeDriver, player: LocalAccount) -> None:
        result = arcade.join(player, 77)
        assert result.error_code == ErrorCode.NOT_FOUND
        assert not arcade.service.is_joined(77, player.address)

    def test_join_finalized(self, arcade: ArcadeDriver, player: LocalAccount) -> None:
        arcade.create_tournament(1)
        arcade.finalize(1)
        result = arcade.join(player, 1)
        assert result.error_code == ErrorCode.NOT_ACTIVE

    def test_join_requires_player_signature(
        self, arcade: ArcadeDriver, player: LocalAccount, other: LocalAccount,
    ) -> None:
        arcade.create_tournament(1)
        proof = arcade.proof(other, "join_tournament", {"tournament_id": 1})
        result = arcade.service.join_tournament(player.address, 1, proof)
        assert result.error_code == ErrorCode.NOT_AUTHORIZED
        assert not arcade.service.is_joined(1, player.address)

    def test_status_checks_precede_signature(
        self, arcade: ArcadeDriver, player: LocalAccount,
    ) -> None:
        arcade.create_tournament(1)
        arcade.finalize(1)
        result = arcade.service.join_tournament(player.address, 1, None)
        assert result.error_code == ErrorCode.NOT_ACTIVE

    def test_joined_marker_ttl(self, arcade: ArcadeDriver, player: LocalAccount) -> None:
        arcade.create_tournament(1)
        arcade.join(player, 1)
        assert arcade.service.store.ttl(DataKey.player_joined(1, player.address)) == 518_400


class TestRecordResult:
    def test_record_and_overwrite(self, arcade: ArcadeDriver, player: LocalAccount) -> None:
        arcade.create_tournament(1)
        arcade.join(player, 1)
        assert arcade.record_result(1, player.address, 9_500).success
        assert arcade.service.get_score(1, player.address) == 9_500
        assert arcade.record_result(1, player.address, 9_800).success
        assert arcade.service.get_score(1, player.address) == 9_800

    def test_zero_score_allowed(self, arcade: ArcadeDriver, player: LocalAccount) -> None:
        arcade.create_tournament(1)
        arcade.join(player, 1)
        assert arcade.record_result(1, player.address, 0).success
        assert arcade.service.get_score(1, player.address) == 0

    def test_player_not_joined(self, arcade: ArcadeDriver, player: LocalAccount) -> None:
        arcade.create_tournament(1)
        result = arcade.record_result(1, player.address, 100)
        assert result.error_code == ErrorCode.NOT_JOINED
        assert arcade.service.get_score(1, player.address) is None

    def test_missing_tournament(self, arcade: ArcadeDriver, player: LocalAccount) -> None:
        result = arcade.record_result(3, player.address, 100)
        assert result.error_code == ErrorCode.NOT_FOUND

    def test_after_finalize(self, arcade: ArcadeDriver, player: LocalAccount) -> None:
        arcade.create_tournament(1)
        arcade.join(player, 1)
        arcade.record_result(1, player.address, 10)
        arcade.finalize(1)
        result = arcade.record_result(1, player.address, 20)
        assert result.error_code == ErrorCode.NOT_ACTIVE
        assert arcade.service.get_score(1, player.address) == 10

    def test_negative_score_rejected(self, arcade: ArcadeDriver, player: LocalAccount) -> None:
        arcade.create_tournament(1)
        arcade.join(player, 1)
        result = arcade.service.record_result(arcade.admin.address, 1, player.address, -1)
        assert result.error_code == ErrorCode.INVALID_INPUT

    def test_non_admin_rejected(
        self, arcade: ArcadeDriver, player: LocalAccount, other: LocalAccount,
    ) -> None:
        arcade.create_tournament(1)
        arcade.join(player, 1)
        result = arcade.record_result(1, player.address, 100, caller=other)
        assert result.error_code == ErrorCode.NOT_AUTHORIZED


class TestFinalizeTournament:
    def test_finalize(self, arcade: ArcadeDriver) -> None:
        arcade.create_tournament(1, entry_fee=50)
        result = arcade.finalize(1)
        assert result.success
        assert result.data["status"] == "finalized"
        record = arcade.service.get_tournament(1)
        assert record.status == TournamentStatus.FINALIZED
        assert record.entry_fee == 50

    def test_finalize_twice(self, arcade: ArcadeDriver) -> None:
        arcade.create_tournament(1)
        arcade.finalize(1)
        result = arcade.finalize(1)
        assert result.error_code == ErrorCode.ALREADY_FINALIZED
        assert len(arcade.service.event_log.events(EventKind.TOURNAMENT_FINALIZED)) == 1

    def test_finalize_missing(self, arcade: ArcadeDriver) -> None:
        assert arcade.finalize(8).error_code == ErrorCode.NOT_FOUND

    def test_scores_survive_finalize(self, arcade: ArcadeDriver, player: LocalAccount) -> None:
        arcade.create_tournament(1)
        arcade.join(player, 1)
        arcade.record_result(1, player.address, 42)
        arcade.finalize(1)
        assert arcade.service.get_score(1, player.address) == 42
        assert arcade.service.is_joined(1, player.address)
