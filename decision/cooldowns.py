"""Per action kind (and per slot) cooldowns of the decision engine."""

from __future__ import annotations

import logging
import time
from typing import Dict, Optional


def _now_ms() -> int:
    return int(time.time() * 1000)


class CooldownTable:
    """
    Maps an action kind, or `kind:slot`, to the instant (epoch ms) it may be
    proposed again. Expired entries are dropped when checked.
    """

    PRUNE_THRESHOLD = 20

    def __init__(self):
        self.logger = logging.getLogger("CooldownTable")
        self.expiry: Dict[str, int] = {}

    @staticmethod
    def _key(action_kind: str, slot=None) -> str:
        return action_kind if slot is None else f"{action_kind}:{slot}"

    def set(self, action_kind: str, duration_ms: int, slot=None) -> None:
        now = _now_ms()
        self.expiry[self._key(action_kind, slot)] = now + int(duration_ms)

        if len(self.expiry) > self.PRUNE_THRESHOLD:
            self.expiry = {key: expires for key, expires in self.expiry.items() if expires > now}

    def is_cooling_down(self, action_kind: str, slot=None) -> bool:
        key = self._key(action_kind, slot)
        expires = self.expiry.get(key)
        if expires is None:
            return False
        if _now_ms() >= expires:
            del self.expiry[key]
            return False
        return True

    def remaining_ms(self, action_kind: str, slot=None) -> int:
        if not self.is_cooling_down(action_kind, slot):
            return 0
        return self.expiry[self._key(action_kind, slot)] - _now_ms()

    def clear(self, action_kind: Optional[str] = None) -> None:
        if action_kind is None:
            self.expiry.clear()
            return
        for key in [k for k in self.expiry if k == action_kind or k.startswith(action_kind + ":")]:
            del self.expiry[key]

    def get_state(self) -> Dict[str, int]:
        return dict(self.expiry)

    def load_state(self, state) -> None:
        if not isinstance(state, dict):
            if state is not None:
                self.logger.warning("Ignoring invalid cooldown state")
            return
        loaded = {}
        for key, expires in state.items():
            try:
                loaded[str(key)] = int(expires)
            except (TypeError, ValueError):
                self.logger.debug("Dropping malformed cooldown entry %s", key)
        self.expiry = loaded
