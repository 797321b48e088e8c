"""
Session recovery for the control loop.

The brokerage may drop the session at any time (for example after a login from
another device). Recovery asks a Reauthenticator whether to log back in, so the
bot can run unattended or wait for an operator.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from dcabot.api.client import BrokerageClient

logger = logging.getLogger(__name__)


class Reauthenticator(ABC):
    """Decides whether the loop may log back in after losing the session."""

    @abstractmethod
    def confirm(self, reason: str) -> bool:
        pass


class AutoReauthenticate(Reauthenticator):
    """Log back in immediately."""

    def confirm(self, reason: str) -> bool:
        logger.info(f"Session lost ({reason}), logging back in automatically")
        return True


class ConfirmBeforeReauthenticate(Reauthenticator):
    """Ask the operator before logging back in."""

    def __init__(self, prompt: Callable[[str], str] = input):
        self.prompt = prompt

    def confirm(self, reason: str) -> bool:
        answer = self.prompt(f"Session closed ({reason}). Log back in? (yes/no): ")
        return answer.strip().lower() == "yes"


def build_reauthenticator(policy: str) -> Reauthenticator:
    if policy == "confirm":
        return ConfirmBeforeReauthenticate()
    return AutoReauthenticate()


class SessionManager:
    """Owns (re)authentication of the brokerage client for the control loop."""

    def __init__(
        self,
        client: BrokerageClient,
        reauthenticator: Optional[Reauthenticator] = None,
        max_attempts: int = 3,
    ):
        self.client = client
        self.reauthenticator = reauthenticator or AutoReauthenticate()
        self.max_attempts = max_attempts
        self.recoveries = 0

    def ensure(self) -> bool:
        """Make sure a session exists before a cycle starts."""
        if self.client.is_session_valid():
            return True
        logger.info("No valid session, logging in...")
        return self._login()

    def recover(self, reason: str) -> bool:
        """
        Re-establish a lost session.

        Returns:
            True if the client is authenticated again
        """
        logger.warning(f"Session expired: {reason}")
        if not self.reauthenticator.confirm(reason):
            logger.warning("Re-authentication declined")
            return False
        ok = self._login()
        if ok:
            self.recoveries += 1
        return ok

    def _login(self) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            if self.client.authenticate():
                logger.info("Login successful")
                return True
            logger.warning(f"Login failed (attempt {attempt}/{self.max_attempts})")
        logger.error("Could not log in")
        return False
