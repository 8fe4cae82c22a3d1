from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pixelmerge.errors import InsufficientCreditsError, UpstreamError
from pixelmerge.models import CreditLedgerEntry, UserCredits, utcnow

logger = logging.getLogger(__name__)


class CreditLedger:
    """Per-user render credits. Only cache misses are billed."""

    def __init__(self, session: Session, *, cost: int = 1) -> None:
        self.session = session
        self.cost = cost

    def balance(self, user_id: str) -> int | None:
        try:
            return self.session.scalars(select(UserCredits.credits).where(UserCredits.user_id == user_id)).first()
        except SQLAlchemyError as exc:
            raise UpstreamError(f"Credit lookup failed: {exc}") from exc

    def ensure_credits(self, user_id: str, cost: int | None = None) -> None:
        needed = self.cost if cost is None else cost
        available = self.balance(user_id)
        if available is None or available < needed:
            raise InsufficientCreditsError("Insufficient credits")

    def spend_credits(
        self,
        user_id: str,
        cost: int | None = None,
        reason: str = "render",
        meta: dict[str, Any] | None = None,
    ) -> None:
        amount = self.cost if cost is None else cost
        try:
            self.session.add(CreditLedgerEntry(user_id=user_id, delta=-amount, reason=reason, meta=meta))
            self.session.execute(
                update(UserCredits)
                .where(UserCredits.user_id == user_id)
                .values(credits=UserCredits.credits - amount, updated_at=utcnow())
            )
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise UpstreamError(f"Credit spend failed: {exc}") from exc
        logger.info("Spent credits user_id=%s amount=%d reason=%s", user_id, amount, reason)
