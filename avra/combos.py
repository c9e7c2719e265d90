"""Detection of multi-step command combos."""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Optional

from .catalog import ItemCatalog, default_catalog
from .constants import MAX_COMBO_BUFFER
from .economy import apply_gain_boost
from .models.items import ComboDefinition
from .models.outcome import Outcome, OutcomeType
from .models.players import PlayerAccount

log = logging.getLogger(__name__)


class ComboTracker:
    """Rolling buffer of single-word tokens matched against combo sequences.

    The buffer is cleared when a combo completes or once ``window`` seconds
    pass without a new token.  An expired buffer is reset before the new
    token is appended, so a late token always starts a fresh chain instead of
    being lost.
    """

    def __init__(
        self,
        catalog: Optional[ItemCatalog] = None,
        *,
        window: float = 10.0,
        max_length: int = MAX_COMBO_BUFFER,
    ) -> None:
        self.catalog = catalog or default_catalog()
        self.window = float(window)
        self.buffer: Deque[str] = deque(maxlen=max_length)
        self.last_token_at: Optional[float] = None

    @property
    def tokens(self) -> frozenset[str]:
        return self.catalog.combo_tokens()

    def is_expired(self, now: float) -> bool:
        return self.last_token_at is not None and now - self.last_token_at >= self.window

    def expire(self, now: float) -> bool:
        """Clear an idle buffer.  Returns ``True`` if anything was dropped."""

        if self.buffer and self.is_expired(now):
            self.reset()
            return True
        return False

    def reset(self) -> None:
        self.buffer.clear()
        self.last_token_at = None

    def match(self) -> Optional[ComboDefinition]:
        return self.catalog.combo_for(list(self.buffer))

    def track(self, account: PlayerAccount, token: str, now: float) -> Outcome:
        token = token.lower()
        if self.is_expired(now):
            self.reset()
        self.buffer.append(token)
        self.last_token_at = now

        combo = self.match()
        if combo is None:
            return Outcome.ok(f"Command: {token}", OutcomeType.COMMAND)

        reward = apply_gain_boost(combo.reward, account, now, self.catalog)
        account.credit(reward)
        account.stats.increment("combos_performed")
        self.reset()
        log.debug("%s completed %s for %d aura", account.account_id, combo.name, reward)
        return Outcome.ok(
            combo.render(reward),
            OutcomeType.COMBO,
            aura_gain=reward,
            effect=combo.effect,
            data={"combo_name": combo.name, "combo_key": combo.key},
        )


__all__ = ["ComboTracker"]
