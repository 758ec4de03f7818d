# chatrelay/services/moderation.py

from __future__ import annotations

from typing import List, Set
import logging

from chatrelay.models.models import User
from chatrelay.services.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class ModerationRegistry:
    """
    Set of muted source addresses.

    A muted address mutes every current and future user connecting from it.
    mute/unmute also sweep the Session Registry so connected users pick up
    the change without re-joining; the caller is expected to broadcast the
    user list of every room an affected user sits in.
    """

    def __init__(self, sessions: SessionRegistry) -> None:
        self.addresses: Set[str] = set()
        self.sessions = sessions

    def mute(self, address: str) -> List[User]:
        self.addresses.add(address)
        affected = self._sweep(address, True)
        logger.info("🔇 Muted %s (%d connected users)", address, len(affected))
        return affected

    def unmute(self, address: str) -> List[User]:
        self.addresses.discard(address)
        affected = self._sweep(address, False)
        logger.info("🔈 Unmuted %s (%d connected users)", address, len(affected))
        return affected

    def is_muted(self, address: str) -> bool:
        return address in self.addresses

    def list(self) -> List[str]:
        return sorted(self.addresses)

    def _sweep(self, address: str, muted: bool) -> List[User]:
        users = self.sessions.list_by_address(address)
        for user in users:
            user.is_muted = muted
        return users
