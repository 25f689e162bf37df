"""
Bulk Dispatch Pipeline.

Sends one templated email per recipient, each carrying its own tracking link:

1. validate input (fail fast, nothing sent)
2. probe the transport with the configuration snapshot (fail fast, nothing sent)
3. check each address; bad shapes count as failures without a network call
4. inject the recipient's tracking link into the template body
5. fan the sends out concurrently and join on every outcome
6. fold the outcomes into a single DispatchReport

There is no retry within a call. Sends already accepted by the transport are
not recalled if the caller goes away.
"""

from __future__ import annotations

import asyncio
import html
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence, Union

from tracker.core.config import settings
from tracker.core.exceptions import (
    ConnectivityError,
    InvalidRecipientError,
    SendError,
    TrackerError,
    ValidationError,
)
from tracker.services.email_provider import (
    EmailMessage,
    EmailProvider,
    SendResult,
    TransportConfig,
    get_email_provider,
)
from tracker.services.links import LinkMasking, TrackingLink, inject_link

logger = logging.getLogger(__name__)

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

DEFAULT_SUBJECT = "Important Security Update"
DEFAULT_BODY = "Please review the attached security information."
INVALID_EMAIL_REASON = "Invalid email format"

OUTCOME_SENT = "sent"
OUTCOME_FAILED = "failed"
OUTCOME_INVALID = "invalid"


def is_valid_email(address: Any) -> bool:
    return isinstance(address, str) and EMAIL_REGEX.match(address) is not None


@dataclass(frozen=True)
class Recipient:
    email: Optional[str]
    name: str = ""


@dataclass(frozen=True)
class Template:
    subject: str = ""
    body: str = ""


@dataclass(frozen=True)
class DispatchAttempt:
    """Outcome of one recipient's send."""
    recipient: Recipient
    outcome: str
    error: Optional[TrackerError] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == OUTCOME_SENT

    @property
    def error_detail(self) -> Optional[str]:
        return self.error.message if self.error else None

    @property
    def error_line(self) -> str:
        return f"{self.recipient.email}: {self.error_detail}"


@dataclass(frozen=True)
class DispatchReport:
    """Aggregate result of one dispatch call."""
    total_requested: int
    sent_count: int
    failed_count: int
    errors: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_attempts(cls, attempts: Sequence[DispatchAttempt]) -> "DispatchReport":
        sent = sum(1 for attempt in attempts if attempt.succeeded)
        errors = tuple(attempt.error_line for attempt in attempts if not attempt.succeeded)
        return cls(
            total_requested=len(attempts),
            sent_count=sent,
            failed_count=len(errors),
            errors=errors,
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "status": "completed",
            "sent": self.sent_count,
            "failed": self.failed_count,
            "total": self.total_requested,
        }
        if self.failed_count:
            payload["errors"] = list(self.errors)
        return payload


LinkInput = Union[str, TrackingLink, None]
ProviderFactory = Callable[[TransportConfig], EmailProvider]


class DispatchPipeline:
    """Probe-then-fan-out email dispatcher."""

    def __init__(
        self,
        provider_factory: ProviderFactory = get_email_provider,
        probe_timeout: Optional[float] = None,
        send_timeout: Optional[float] = None,
        concurrency: Optional[int] = None,
        placeholder: Optional[str] = None,
    ):
        self._provider_factory = provider_factory
        self._probe_timeout = settings.smtp_probe_timeout if probe_timeout is None else probe_timeout
        self._send_timeout = settings.smtp_send_timeout if send_timeout is None else send_timeout
        self._concurrency = settings.dispatch_concurrency if concurrency is None else concurrency
        self._placeholder = placeholder or settings.link_placeholder
        if self._concurrency < 1:
            raise ValueError("concurrency must be at least 1")

    # ------------------------------------------------------------------ #
    #  Rendering
    # ------------------------------------------------------------------ #

    def resolve_link(
        self,
        links: Optional[Sequence[LinkInput]],
        index: int,
        masking: Optional[LinkMasking],
    ) -> Optional[TrackingLink]:
        """Tracking link aligned with recipient ``index``, if any."""
        if not links or index >= len(links):
            return None
        link = links[index]
        if not link:
            return None
        if isinstance(link, TrackingLink):
            if link.masking is None and masking is not None:
                return TrackingLink(url=link.url, masking=masking)
            return link
        return TrackingLink(url=str(link), masking=masking)

    def render_message(
        self,
        recipient: Recipient,
        campaign: str,
        template: Template,
        link: Optional[TrackingLink],
    ) -> EmailMessage:
        body = inject_link(template.body or DEFAULT_BODY, link, self._placeholder)
        greeting_name = html.escape(recipient.name or recipient.email)
        html_body = f"""
            <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
                <p>Dear {greeting_name},</p>
                <div style="background: #f8f9fa; padding: 1rem; border-radius: 8px; margin: 1.5rem 0; line-height: 1.6;">
                    {body}
                </div>
                <hr style="margin: 2rem 0; border: none; border-top: 1px solid #e2e8f0;">
                <p style="font-size: 0.85rem; color: #64748b;">Campaign: {html.escape(campaign)}</p>
            </div>
        """
        return EmailMessage(
            to=recipient.email,
            to_name=recipient.name or None,
            subject=template.subject or DEFAULT_SUBJECT,
            html_body=html_body,
        )

    # ------------------------------------------------------------------ #
    #  Probe
    # ------------------------------------------------------------------ #

    async def probe(self, provider: EmailProvider, config: TransportConfig, total: int = 0) -> None:
        """Verify the transport or raise a classified ConnectivityError."""
        try:
            await asyncio.wait_for(provider.verify_connection(), timeout=self._probe_timeout)
        except asyncio.TimeoutError as exc:
            error = ConnectivityError(
                ConnectivityError.TIMEOUT,
                f"Connection timeout after {self._probe_timeout:g}s",
                host=config.host,
                port=config.port,
            )
            error.total_requested = total
            self._log_probe_failure(error, config)
            raise error from exc
        except ConnectivityError as error:
            error.total_requested = total
            self._log_probe_failure(error, config)
            raise

        logger.info("SMTP connection verified for %s:%s", config.host, config.port)

    def _log_probe_failure(self, error: ConnectivityError, config: TransportConfig) -> None:
        logger.error(
            "SMTP connection failed (%s): %s | host=%s port=%s user=%s | %s",
            error.kind, error.message, config.host, config.port, config.username, error.hint,
        )

    async def test_connection(self, config: TransportConfig) -> dict[str, Any]:
        """Run only the probe and report the result."""
        provider = self._provider_factory(config)
        try:
            await self.probe(provider, config)
        except ConnectivityError as error:
            return {"status": "failed", **error.to_dict()}
        return {"status": "success", "message": "SMTP connection verified!"}

    # ------------------------------------------------------------------ #
    #  Dispatch
    # ------------------------------------------------------------------ #

    async def dispatch(
        self,
        recipients: Sequence[Recipient],
        campaign: str,
        template: Optional[Template],
        links: Optional[Sequence[LinkInput]] = None,
        masking: Optional[LinkMasking] = None,
        config: Optional[TransportConfig] = None,
    ) -> DispatchReport:
        """Send ``template`` to every recipient and return the joined report.

        Raises:
            ValidationError: recipients empty, or campaign/template missing.
            ConnectivityError: the probe failed; nothing was sent.
        """
        if not recipients:
            raise ValidationError("No recipients provided")
        if not campaign or template is None:
            raise ValidationError("Campaign and template required")

        config = config or TransportConfig.from_settings()
        provider = self._provider_factory(config)
        total = len(recipients)

        await self.probe(provider, config, total=total)

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _send_one(index: int, recipient: Recipient) -> DispatchAttempt:
            if not is_valid_email(recipient.email):
                logger.warning("Skipping invalid recipient address: %r", recipient.email)
                return DispatchAttempt(
                    recipient, OUTCOME_INVALID, InvalidRecipientError(recipient.email, INVALID_EMAIL_REASON)
                )

            message = self.render_message(
                recipient, campaign, template, self.resolve_link(links, index, masking)
            )
            async with semaphore:
                logger.info("Sending email to %s", recipient.email)
                try:
                    result = await asyncio.wait_for(
                        provider.send_email(message), timeout=self._send_timeout
                    )
                except asyncio.TimeoutError:
                    result = SendResult(
                        success=False, error=f"Send timed out after {self._send_timeout:g}s"
                    )
                except Exception as exc:
                    logger.exception("Unexpected transport failure for %s", recipient.email)
                    result = SendResult(success=False, error=f"{type(exc).__name__}: {exc}")

            if result.success:
                logger.info("Email sent to %s", recipient.email)
                return DispatchAttempt(recipient, OUTCOME_SENT)

            logger.error("Email failed: %s: %s", recipient.email, result.error)
            return DispatchAttempt(
                recipient, OUTCOME_FAILED, SendError(recipient.email, result.error or "Unknown error")
            )

        attempts = await asyncio.gather(
            *(_send_one(index, recipient) for index, recipient in enumerate(recipients))
        )
        report = DispatchReport.from_attempts(attempts)

        logger.info(
            "Email send summary for campaign %s: %d sent, %d failed, %d total",
            campaign, report.sent_count, report.failed_count, report.total_requested,
        )
        return report


# Singleton instance
dispatch_pipeline = DispatchPipeline()
