"""
Helpers for the proof endpoint
"""

from typing import Optional

from models.raffle import Raffle


def recompute_winning_index(raffle: Raffle) -> Optional[int]:
    """
    Winning ticket index for a raffle.

    The stored index wins. Otherwise it is randomness mod the ticket count
    captured when randomness was fulfilled, falling back to the live
    total_tickets for rows indexed before that snapshot existed.
    """
    if raffle.winning_index is not None:
        return raffle.winning_index
    if not raffle.randomness:
        return None

    divisor = raffle.randomness_total_tickets
    if divisor is None:
        divisor = raffle.total_tickets
    if not divisor or divisor <= 0:
        return None

    try:
        randomness = int(raffle.randomness)
    except ValueError:
        return None
    return randomness % divisor


def build_tx_url(explorer_base_url: str, tx_hash: Optional[str]) -> Optional[str]:
    if not tx_hash:
        return None
    return f"{explorer_base_url.rstrip('/')}/tx/{tx_hash}"
