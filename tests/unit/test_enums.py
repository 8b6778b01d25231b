"""Tests for bw_common.enums — values must match DB CHECK constraints."""

from src.bw_common.enums import (
    LEDGER_KIND_SIGN,
    BetOutcome,
    BetSort,
    BetStatus,
    LedgerEntryKind,
    PaymentDirection,
    PaymentGateway,
    PaymentPurpose,
    PaymentStatus,
)


class TestAllEnumsAreStr:
    def test_str_values(self) -> None:
        for enum_cls in (
            LedgerEntryKind,
            BetStatus,
            BetOutcome,
            BetSort,
            PaymentGateway,
            PaymentDirection,
            PaymentPurpose,
            PaymentStatus,
        ):
            for member in enum_cls:
                assert isinstance(member, str)


class TestLedgerEntryKind:
    def test_values(self) -> None:
        assert {k.value for k in LedgerEntryKind} == {
            "deposit",
            "withdrawal",
            "bet_placed",
            "bet_won",
            "bet_refunded",
            "withdrawal_reversed",
        }

    def test_every_kind_has_a_sign(self) -> None:
        assert set(LEDGER_KIND_SIGN) == set(LedgerEntryKind)

    def test_debits(self) -> None:
        debits = {k for k, sign in LEDGER_KIND_SIGN.items() if sign < 0}
        assert debits == {LedgerEntryKind.WITHDRAWAL, LedgerEntryKind.BET_PLACED}


class TestBetEnums:
    def test_outcomes_are_terminal_statuses(self) -> None:
        assert {o.value for o in BetOutcome} == {BetStatus.WON.value, BetStatus.LOST.value}


class TestPaymentPurpose:
    def test_values_match_check_constraint(self) -> None:
        assert {p.value for p in PaymentPurpose} == {"deposit", "withdrawal", "daily_access"}
