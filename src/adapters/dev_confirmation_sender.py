"""
Dev confirmation sender.

Logs confirmation links instead of mailing them. Used for local development
and tests; a real deployment swaps in an SMTP or provider-backed sender.

Sent links are kept in memory so tests can follow them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from src.components.subscription.component import mask_email

logger = logging.getLogger(__name__)


@dataclass
class SentConfirmation:
    """Record of a logged confirmation link."""

    recipient: str
    confirm_url: str
    site_name: str
    logged_at: datetime


@dataclass
class DevConfirmationSender:
    """Implements ConfirmationSenderPort by logging."""

    sent: list[SentConfirmation] = field(default_factory=list)
    log_level: int = logging.INFO

    def send_confirmation(self, email: str, confirm_url: str, site_name: str) -> None:
        self.sent.append(
            SentConfirmation(
                recipient=email,
                confirm_url=confirm_url,
                site_name=site_name,
                logged_at=datetime.now(UTC),
            )
        )
        logger.log(
            self.log_level,
            "CONFIRMATION (dev): To=%s, Site=%s, Link=%s",
            mask_email(email),
            site_name,
            confirm_url,
        )

    # --- Test helpers ---

    def get_last(self) -> SentConfirmation | None:
        return self.sent[-1] if self.sent else None

    def get_sent_to(self, recipient: str) -> list[SentConfirmation]:
        return [s for s in self.sent if s.recipient == recipient]
