"""Quota-gated accounting for calls to the AI recommendation service.

The AI service itself is external; this only decides whether a call may
go out and records its coin cost.
"""

from __future__ import annotations

import logging

from lifequest.ledger.service import Ledger
from lifequest.quota.guard import AI_DAILY, MISSION_GENERATION, QuotaGuard

logger = logging.getLogger(__name__)

# Purposes with a quota of their own on top of the daily AI ceiling
PURPOSE_POLICIES = {"mission_generation": MISSION_GENERATION}


class AIUsageMeter:
    def __init__(self, quota: QuotaGuard, ledger: Ledger, coin_cost: int = 0) -> None:
        self._quota = quota
        self._ledger = ledger
        self._coin_cost = coin_cost

    async def authorize_ai_call(self, identity: str, user_id: str, purpose: str | None = None) -> dict:
        """Admit one AI call for ``user_id`` or raise.

        Raises ``QuotaExceeded`` past the daily ceiling (or the purpose's own
        ceiling) and ``InsufficientCoins`` when the call has a coin cost the
        user cannot pay.
        """
        if purpose in PURPOSE_POLICIES:
            await self._quota.enforce(identity, PURPOSE_POLICIES[purpose])
        decision = await self._quota.enforce(identity, AI_DAILY)
        if self._coin_cost > 0:
            balance = await self._ledger.debit_coins(user_id, self._coin_cost)
        else:
            balance = (await self._ledger.get_or_create_user(user_id))["coins"]
        logger.info("AI call authorized user=%s purpose=%s remaining=%d", user_id, purpose, decision.remaining)
        return {
            "allowed": True,
            "purpose": purpose,
            "remaining": decision.remaining,
            "reset_at": decision.reset_at,
            "coins_charged": self._coin_cost,
            "coins": balance,
        }
