"""
Unit tests for proof helpers
"""

from models import Raffle
from api.proof import build_tx_url, recompute_winning_index


def _raffle(**values) -> Raffle:
    defaults = dict(raffle_id=1, total_tickets=0, winning_index=None, randomness=None, randomness_total_tickets=None)
    defaults.update(values)
    return Raffle(**defaults)


class TestRecomputeWinningIndex:

    def test_stored_index_wins(self):
        raffle = _raffle(winning_index=3, randomness="1000", total_tickets=7)
        assert recompute_winning_index(raffle) == 3

    def test_randomness_mod_snapshot(self):
        raffle = _raffle(randomness=str(10 ** 70 + 789), randomness_total_tickets=1000, total_tickets=1200)
        assert recompute_winning_index(raffle) == 789

    def test_falls_back_to_total_tickets(self):
        raffle = _raffle(randomness="25", total_tickets=10)
        assert recompute_winning_index(raffle) == 5

    def test_no_randomness(self):
        assert recompute_winning_index(_raffle(total_tickets=10)) is None

    def test_no_tickets(self):
        assert recompute_winning_index(_raffle(randomness="25", total_tickets=0)) is None


class TestBuildTxUrl:

    def test_trailing_slash_is_ignored(self):
        tx = "0x" + "ab" * 32
        assert build_tx_url("https://explorer.test/", tx) == f"https://explorer.test/tx/{tx}"

    def test_missing_tx(self):
        assert build_tx_url("https://explorer.test", None) is None
