"""Parimutuel payout calculation for resolved flash markets."""

from __future__ import annotations

from collections.abc import Sequence

from trendline.processing.flash.models import (
    Direction,
    FlashPosition,
    PayoutSummary,
    PositionSettlement,
    ZeroWinnerPolicy,
)


def calculate_payouts(
    positions: Sequence[FlashPosition],
    winning_side: Direction,
    policy: ZeroWinnerPolicy = ZeroWinnerPolicy.HOUSE,
) -> PayoutSummary:
    """Split the losing pool across winners pro rata to their stake.

    Winners receive ``stake + losers_total * stake / winners_total``; losers
    receive 0. With winners present the whole pool is paid out. With no
    winners, HOUSE pays nothing and REFUND returns every stake.
    """
    winners_total = sum(p.stake_amount for p in positions if p.direction == winning_side)
    losers_total = sum(p.stake_amount for p in positions if p.direction != winning_side)

    settlements: list[PositionSettlement] = []
    for p in positions:
        is_winner = p.direction == winning_side
        if winners_total == 0:
            payout = p.stake_amount if policy is ZeroWinnerPolicy.REFUND else 0.0
        elif is_winner:
            payout = p.stake_amount + losers_total * (p.stake_amount / winners_total)
        else:
            payout = 0.0
        settlements.append(
            PositionSettlement(
                position_id=p.id,
                user_id=p.user_id,
                direction=p.direction,
                stake_amount=p.stake_amount,
                payout=payout,
                profit_loss=payout - p.stake_amount,
                is_winner=is_winner,
            )
        )

    return PayoutSummary(
        winning_side=winning_side,
        winners_total=winners_total,
        losers_total=losers_total,
        total_paid=sum(s.payout for s in settlements),
        settlements=settlements,
    )
