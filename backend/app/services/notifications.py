"""SMS and email notifications for renewals and new brokers.

Delivery is best-effort. Every attempt yields a NotificationResult
(delivered / skipped / failed) that is logged and written to
notification_logs; nothing here raises into policy or commission code.

SMS goes through Twilio first and falls back to MSG91. Email goes via Mailgun.
"""
import enum
import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional

import requests

logger = logging.getLogger(__name__)


class NotificationOutcome(str, enum.Enum):
    DELIVERED = "delivered"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class NotificationResult:
    outcome: NotificationOutcome
    provider: Optional[str] = None
    detail: str = ""

    @property
    def delivered(self) -> bool:
        return self.outcome == NotificationOutcome.DELIVERED


def digits_only(phone: str) -> str:
    return re.sub(r"\D", "", phone or "")


def to_international(phone: str, country_code: str) -> str:
    """9876543210 -> +919876543210; numbers already starting with + are kept."""
    phone = (phone or "").strip()
    if phone.startswith("+"):
        return "+" + digits_only(phone)
    return country_code + digits_only(phone)


# ── Providers ────────────────────────────────────────────────────────

class TwilioSmsProvider:
    name = "twilio"

    def __init__(self, account_sid: Optional[str], auth_token: Optional[str],
                 from_number: Optional[str], country_code: str = "+91", timeout: int = 15):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.country_code = country_code
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def send(self, phone: str, message: str) -> NotificationResult:
        url = f"https://api.twilio.com/2010-04-01/Accounts/{self.account_sid}/Messages.json"
        resp = requests.post(
            url,
            data={
                "To": to_international(phone, self.country_code),
                "From": self.from_number,
                "Body": message,
            },
            auth=(self.account_sid, self.auth_token),
            timeout=self.timeout,
        )
        if resp.status_code in (200, 201):
            return NotificationResult(NotificationOutcome.DELIVERED, self.name, "SMS accepted by Twilio")
        return NotificationResult(
            NotificationOutcome.FAILED, self.name,
            f"Twilio returned {resp.status_code}: {resp.text[:200]}",
        )


class Msg91SmsProvider:
    name = "msg91"
    url = "https://api.msg91.com/api/sendhttp.php"

    def __init__(self, api_key: Optional[str], sender_id: str = "INSBOOK", timeout: int = 15):
        self.api_key = api_key
        self.sender_id = sender_id
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def send(self, phone: str, message: str) -> NotificationResult:
        # MSG91 wants the bare 10-digit Indian number
        number = digits_only(phone)
        if len(number) == 12 and number.startswith("91"):
            number = number[2:]
        if len(number) != 10:
            return NotificationResult(
                NotificationOutcome.FAILED, self.name, f"Invalid phone for MSG91: {phone}"
            )

        resp = requests.get(
            self.url,
            params={
                "authkey": self.api_key,
                "mobiles": number,
                "message": message,
                "sender": self.sender_id,
                "route": "4",
            },
            timeout=self.timeout,
        )
        body = (resp.text or "").strip()
        if resp.status_code < 400 and body and "error" not in body.lower():
            return NotificationResult(NotificationOutcome.DELIVERED, self.name, body[:100])
        return NotificationResult(
            NotificationOutcome.FAILED, self.name,
            f"MSG91 returned {resp.status_code}: {body[:200]}",
        )


class MailgunEmailSender:
    name = "mailgun"

    def __init__(self, api_key: Optional[str], domain: Optional[str],
                 from_email: str, from_name: str, timeout: int = 15):
        self.api_key = api_key
        self.domain = domain
        self.from_email = from_email
        self.from_name = from_name
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.domain)

    def send(self, to_email: str, subject: str, html: str) -> NotificationResult:
        resp = requests.post(
            f"https://api.mailgun.net/v3/{self.domain}/messages",
            auth=("api", self.api_key),
            data={
                "from": f"{self.from_name} <{self.from_email}>",
                "to": [to_email],
                "subject": subject,
                "html": html,
            },
            timeout=self.timeout,
        )
        if resp.status_code < 400:
            return NotificationResult(NotificationOutcome.DELIVERED, self.name, "Email accepted by Mailgun")
        return NotificationResult(
            NotificationOutcome.FAILED, self.name,
            f"Mailgun returned {resp.status_code}: {resp.text[:200]}",
        )


# ── Notifier ─────────────────────────────────────────────────────────

class Notifier:
    """Fire-and-forget notifications for renewals and broker onboarding."""

    def __init__(
        self,
        sms_providers: List,
        email_sender: Optional[MailgunEmailSender] = None,
        session_factory: Optional[Callable] = None,
        app_name: str = "Insurance Book",
    ):
        self.sms_providers = sms_providers
        self.email_sender = email_sender
        self.session_factory = session_factory
        self.app_name = app_name

    def send_sms(self, phone: Optional[str], message: str, event_type: str) -> NotificationResult:
        result = self._send_sms(phone, message)
        self._record("sms", event_type, phone, result)
        return result

    def send_email(self, to_email: Optional[str], subject: str, html: str, event_type: str) -> NotificationResult:
        if not to_email:
            result = NotificationResult(NotificationOutcome.SKIPPED, detail="No email address")
        elif not self.email_sender or not self.email_sender.configured:
            result = NotificationResult(NotificationOutcome.SKIPPED, detail="Mailgun not configured")
        else:
            try:
                result = self.email_sender.send(to_email, subject, html)
            except Exception as e:
                result = NotificationResult(NotificationOutcome.FAILED, self.email_sender.name, str(e))
        self._record("email", event_type, to_email, result)
        return result

    def notify_renewal_due(self, policy, days_left: int) -> List[NotificationResult]:
        """Remind the customer by SMS and the owning agent by email."""
        plural = "s" if days_left != 1 else ""
        message = (
            f"Hi {policy.display_name}, your policy {policy.policy_number} "
            f"expires in {days_left} day{plural}."
        )
        agent = policy.agent
        if agent and agent.phone:
            message += f" Contact your agent at {agent.phone} for renewal."
        message += f" - {self.app_name}"

        results = [self.send_sms(policy.contact_phone, message, "renewal_due")]

        if agent:
            html = (
                f"<h2>Policy Renewal Reminder</h2>"
                f"<p>Policy <strong>{policy.policy_number}</strong> for {policy.display_name} "
                f"({policy.policy_type}, premium {policy.premium_amount}) is due for renewal "
                f"in <strong>{days_left} day{plural}</strong> on {policy.end_date.isoformat()}.</p>"
                f"<p>Please contact the customer to process the renewal.</p>"
            )
            results.append(self.send_email(
                agent.email,
                f"Policy Renewal Reminder - {policy.policy_number}",
                html,
                "renewal_due",
            ))
        return results

    def notify_welcome(self, agent) -> NotificationResult:
        message = (
            f"Welcome to {self.app_name}, {agent.full_name or agent.username}! "
            f"Your Agent Code: {agent.agent_code}."
        )
        return self.send_sms(agent.phone, message, "welcome")

    def _send_sms(self, phone: Optional[str], message: str) -> NotificationResult:
        if not phone or not digits_only(phone):
            return NotificationResult(NotificationOutcome.SKIPPED, detail="No phone number")

        configured = [p for p in self.sms_providers if p.configured]
        if not configured:
            return NotificationResult(NotificationOutcome.SKIPPED, detail="No SMS provider configured")

        failures = []
        for provider in configured:
            try:
                result = provider.send(phone, message)
            except Exception as e:
                result = NotificationResult(NotificationOutcome.FAILED, provider.name, str(e))
            if result.delivered:
                return result
            logger.warning(f"SMS via {provider.name} failed: {result.detail}")
            failures.append(f"{provider.name}: {result.detail}")

        return NotificationResult(NotificationOutcome.FAILED, configured[-1].name, "; ".join(failures))

    def _record(self, channel: str, event_type: str, recipient: Optional[str], result: NotificationResult):
        if result.outcome == NotificationOutcome.FAILED:
            logger.error(f"{channel} {event_type} to {recipient} failed: {result.detail}")
        else:
            logger.info(f"{channel} {event_type} to {recipient}: {result.outcome.value} {result.detail}")

        if not self.session_factory:
            return
        try:
            from app.models.notification import NotificationLog
            db = self.session_factory()
            try:
                db.add(NotificationLog(
                    channel=channel,
                    event_type=event_type,
                    recipient=recipient,
                    outcome=result.outcome.value,
                    provider=result.provider,
                    detail=result.detail[:1000] if result.detail else None,
                ))
                db.commit()
            finally:
                db.close()
        except Exception as e:
            logger.debug(f"Failed to log notification: {e}")


def build_notifier(config, session_factory: Optional[Callable] = None) -> Notifier:
    """Construct the notifier from settings; called once at startup."""
    return Notifier(
        sms_providers=[
            TwilioSmsProvider(
                config.TWILIO_ACCOUNT_SID,
                config.TWILIO_AUTH_TOKEN,
                config.TWILIO_FROM_NUMBER,
                country_code=config.SMS_COUNTRY_CODE,
            ),
            Msg91SmsProvider(config.MSG91_API_KEY, config.MSG91_SENDER_ID),
        ],
        email_sender=MailgunEmailSender(
            config.MAILGUN_API_KEY,
            config.MAILGUN_DOMAIN,
            config.MAILGUN_FROM_EMAIL,
            config.MAILGUN_FROM_NAME,
        ),
        session_factory=session_factory,
        app_name=config.APP_NAME,
    )
