"""Digest email rendering and delivery.

Senders never raise for delivery problems; they return a :class:`SendResult`
so the calling handler can decide whether to stamp its idempotency markers.
"""

from dataclasses import dataclass
from email.message import EmailMessage
from typing import Any, Dict, Mapping, Optional, Tuple

import aiosmtplib
from jinja2 import DictLoader, Environment, StrictUndefined, select_autoescape

from .config import Settings
from .telemetry import get_logger

log = get_logger(__name__)

FAVORITES_STARTING_SOON = "favorites_starting_soon"
SELLER_WEEKLY_ANALYTICS = "seller_weekly_analytics"

TEMPLATES = {
    f"{FAVORITES_STARTING_SOON}.subject": (
        "{% if sales|length == 1 %}Starting soon: {{ sales[0].title }}"
        "{% else %}{{ sales|length }} of your favorite sales are starting soon{% endif %}"
    ),
    f"{FAVORITES_STARTING_SOON}.txt": """\
Hi {{ recipient_name or "there" }},

{% if sales|length == 1 %}A sale you favorited starts within the next {{ hours_before_start }} hours:{% else %}These sales you favorited start within the next {{ hours_before_start }} hours:{% endif %}

{% for sale in sales %}
* {{ sale.title }}
  {{ sale.address }}
  {{ sale.date_range }}{% if sale.time_window %} ({{ sale.time_window }}){% endif %}

  {{ sale.url }}
{% endfor %}

See you there!
""",
    f"{SELLER_WEEKLY_ANALYTICS}.subject": "Your weekly sale performance ({{ week_start }} - {{ week_end }})",
    f"{SELLER_WEEKLY_ANALYTICS}.txt": """\
Hi {{ owner_display_name or "there" }},

Here is how your sales did from {{ week_start }} to {{ week_end }}:

  Views:  {{ total_views }}
  Saves:  {{ total_saves }}
  Clicks: {{ total_clicks }}
{% if top_sales %}

Top sales:
{% for sale in top_sales %}
  {{ loop.index }}. {{ sale.title }} - {{ sale.views }} views, {{ sale.saves }} saves, {{ sale.clicks }} clicks ({{ "%.1f"|format(sale.ctr) }}% CTR)
{% endfor %}
{% endif %}

Full details: {{ dashboard_url }}
""",
}

_env = Environment(
    loader=DictLoader(TEMPLATES),
    autoescape=select_autoescape(["html", "xml"]),
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
)


def render_digest(template: str, data: Mapping[str, Any]) -> Tuple[str, str]:
    """Render (subject, text body) for a digest template."""
    subject = _env.get_template(f"{template}.subject").render(**data).strip()
    body = _env.get_template(f"{template}.txt").render(**data)
    return subject, body


@dataclass
class SendResult:
    ok: bool
    error: Optional[str] = None


class NotificationSender:
    async def send_digest(self, to: str, template: str, data: Dict[str, Any]) -> SendResult:
        raise NotImplementedError


class ConsoleNotificationSender(NotificationSender):
    """Logs rendered digests instead of delivering them."""

    async def send_digest(self, to, template, data):
        if not to or not to.strip():
            return SendResult(ok=False, error="Invalid recipient email")
        subject, body = render_digest(template, data)
        log.info("digest_email", to=to.strip(), template=template, subject=subject, body=body)
        return SendResult(ok=True)


class SmtpNotificationSender(NotificationSender):
    def __init__(self, settings: Settings):
        if not settings.smtp_host:
            raise ValueError("SMTP host is required for the smtp email provider")
        self._settings = settings

    def _build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self._settings.email_from
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)
        return msg

    async def send_digest(self, to, template, data):
        if not to or not to.strip():
            return SendResult(ok=False, error="Invalid recipient email")
        subject, body = render_digest(template, data)
        s = self._settings
        try:
            await aiosmtplib.send(
                self._build_message(to.strip(), subject, body),
                hostname=s.smtp_host,
                port=s.smtp_port,
                username=s.smtp_username,
                password=s.smtp_password,
                start_tls=s.smtp_use_tls,
                timeout=30.0,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            log.warning("digest_email_failed", to=to, template=template, error=str(e))
            return SendResult(ok=False, error=str(e))
        log.info("digest_email_sent", to=to, template=template, subject=subject)
        return SendResult(ok=True)


def sender_from_settings(settings: Settings) -> NotificationSender:
    if settings.email_provider == "smtp":
        return SmtpNotificationSender(settings)
    return ConsoleNotificationSender()
