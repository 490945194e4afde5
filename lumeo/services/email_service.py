import html
import logging
import smtplib
import ssl
import time
from email.message import EmailMessage
from typing import Optional
from urllib.parse import urlencode

import httpx

from lumeo.core.config import Settings, settings as default_settings
from lumeo.core.errors import EmailDeliveryError

logger = logging.getLogger(__name__)


class EmailService:
    """Transactional email for the early access flow"""

    _http_backends = {
        "sendgrid": "_send_sendgrid",
        "mailgun": "_send_mailgun",
        "postmark": "_send_postmark",
    }

    def __init__(self, config: Settings = default_settings, transport: Optional[httpx.BaseTransport] = None):
        self.config = config
        self.transport = transport

    @property
    def backend(self) -> str:
        return (self.config.email_backend or "disabled").lower()

    def _from_header(self) -> Optional[str]:
        if self.config.from_email and self.config.from_name:
            return f"{self.config.from_name} <{self.config.from_email}>"
        return self.config.from_email or None

    @staticmethod
    def _render_html_template(
        *,
        preheader: str,
        badge: str,
        title: str,
        message_html: str,
        rows: list[tuple[str, str]],
        cta_text: str,
        cta_link: str,
        footer_note: str,
    ) -> str:
        preheader_esc = html.escape(preheader)
        badge_esc = html.escape(badge)
        title_esc = html.escape(title)
        cta_text_esc = html.escape(cta_text)
        cta_link_esc = html.escape(cta_link, quote=True)
        footer_note_esc = html.escape(footer_note)
        rows_html = "".join(
            f"""
                <tr>
                  <td style="padding:6px 0; font-size:12px; letter-spacing:0.1em; text-transform:uppercase; color:#444444;">{html.escape(label)}</td>
                  <td align="right" style="padding:6px 0; font-size:12px; color:#f97316;">{html.escape(value)}</td>
                </tr>"""
            for label, value in rows
        )

        return f"""<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width,initial-scale=1" />
    <meta name="color-scheme" content="dark" />
    <title>{title_esc}</title>
  </head>
  <body style="margin:0; padding:0; background-color:#000000; font-family:'Courier New', Courier, monospace; color:#e5e5e5;">
    <div style="display:none; max-height:0; overflow:hidden; opacity:0; color:transparent;">
      {preheader_esc}
    </div>
    <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="background-color:#000000; padding:24px 0;">
      <tr>
        <td align="center" style="padding:0 16px;">
          <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="600" style="width:600px; max-width:600px; background-color:#0a0a0a; border:1px solid #1a1a1a;">
            <tr>
              <td align="center" style="padding:40px 20px; border-bottom:1px solid #f97316;">
                <div style="color:#f97316; font-size:24px; letter-spacing:0.3em; font-weight:bold; text-transform:uppercase;">QORE // LABS</div>
              </td>
            </tr>
            <tr>
              <td style="padding:40px 30px;">
                <div style="display:inline-block; color:#f97316; padding:6px 12px; border:1px solid #3a2410; font-size:10px; letter-spacing:0.2em; text-transform:uppercase;">{badge_esc}</div>
                <h1 style="font-size:28px; font-weight:normal; margin:24px 0; color:#ffffff;">{title_esc}</h1>
                <div style="font-size:14px; line-height:1.8; color:#888888;">
                  {message_html}
                </div>
                <table role="presentation" cellspacing="0" cellpadding="0" border="0" width="100%" style="margin-top:24px; border-top:1px solid #1a1a1a;">{rows_html}
                </table>
                <table role="presentation" cellspacing="0" cellpadding="0" border="0" style="margin-top:24px;">
                  <tr>
                    <td bgcolor="#f97316">
                      <a href="{cta_link_esc}" style="display:inline-block; padding:14px 28px; font-size:12px; font-weight:bold; letter-spacing:0.1em; text-transform:uppercase; color:#000000; text-decoration:none;">
                        {cta_text_esc}
                      </a>
                    </td>
                  </tr>
                </table>
                <div style="margin-top:18px; font-size:11px; line-height:18px; color:#555555;">
                  If the button does not work, paste this link into your browser:<br />
                  <a href="{cta_link_esc}" style="color:#f97316; text-decoration:none; word-break:break-all;">{cta_link_esc}</a>
                </div>
              </td>
            </tr>
            <tr>
              <td align="center" style="padding:30px; border-top:1px solid #1a1a1a; font-size:10px; letter-spacing:0.1em; color:#444444;">
                {footer_note_esc}
              </td>
            </tr>
          </table>
        </td>
      </tr>
    </table>
  </body>
</html>"""

    def _send_smtp(self, msg: EmailMessage) -> None:
        if not self.config.smtp_host:
            raise EmailDeliveryError("SMTP host is not configured")
        timeout = self.config.email_timeout_seconds
        try:
            if self.config.smtp_use_ssl:
                context = ssl.create_default_context()
                with smtplib.SMTP_SSL(self.config.smtp_host, self.config.smtp_port, context=context, timeout=timeout) as server:
                    if self.config.smtp_username and self.config.smtp_password:
                        server.login(self.config.smtp_username, self.config.smtp_password)
                    server.send_message(msg)
                    return

            with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=timeout) as server:
                server.ehlo()
                if self.config.smtp_use_tls:
                    server.starttls(context=ssl.create_default_context())
                    server.ehlo()
                if self.config.smtp_username and self.config.smtp_password:
                    server.login(self.config.smtp_username, self.config.smtp_password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise EmailDeliveryError(str(exc)) from exc

    def _post(self, provider: str, url: str, **kwargs) -> None:
        try:
            with httpx.Client(timeout=self.config.email_timeout_seconds, transport=self.transport) as client:
                response = client.post(url, **kwargs)
        except httpx.HTTPError as exc:
            raise EmailDeliveryError(str(exc)) from exc
        if response.status_code >= 300:
            raise EmailDeliveryError(f"{provider} responded {response.status_code}: {response.text[:200]}")

    def _send_sendgrid(self, *, to_email: str, subject: str, text_body: str, html_body: Optional[str]) -> None:
        if not self.config.sendgrid_api_key:
            raise EmailDeliveryError("SendGrid API key is not configured")
        content = [{"type": "text/plain", "value": text_body}]
        if html_body:
            content.append({"type": "text/html", "value": html_body})
        payload = {
            "personalizations": [{"to": [{"email": to_email}], "subject": subject}],
            "from": {"email": self.config.from_email, "name": self.config.from_name},
            "content": content,
        }
        self._post(
            "SendGrid",
            self.config.sendgrid_api_url,
            json=payload,
            headers={"Authorization": f"Bearer {self.config.sendgrid_api_key}"},
        )

    def _send_mailgun(self, *, to_email: str, subject: str, text_body: str, html_body: Optional[str]) -> None:
        if not self.config.mailgun_api_key or not self.config.mailgun_domain:
            raise EmailDeliveryError("Mailgun API key or domain is not configured")
        data = {
            "from": self._from_header(),
            "to": to_email,
            "subject": subject,
            "text": text_body,
        }
        if html_body:
            data["html"] = html_body
        base = self.config.mailgun_api_base_url.rstrip("/")
        self._post(
            "Mailgun",
            f"{base}/{self.config.mailgun_domain}/messages",
            data=data,
            auth=("api", self.config.mailgun_api_key),
        )

    def _send_postmark(self, *, to_email: str, subject: str, text_body: str, html_body: Optional[str]) -> None:
        if not self.config.postmark_api_key:
            raise EmailDeliveryError("Postmark API key is not configured")
        payload = {
            "From": self._from_header(),
            "To": to_email,
            "Subject": subject,
            "TextBody": text_body,
        }
        if html_body:
            payload["HtmlBody"] = html_body
        self._post(
            "Postmark",
            self.config.postmark_api_url,
            json=payload,
            headers={"Accept": "application/json", "X-Postmark-Server-Token": self.config.postmark_api_key},
        )

    def send_email(
        self,
        *,
        to_email: str,
        subject: str,
        text_body: str,
        html_body: Optional[str] = None,
    ) -> bool:
        """Deliver one message; returns False instead of raising when delivery fails"""
        backend = self.backend
        if backend == "disabled":
            return False

        started = time.monotonic()
        try:
            if backend == "console":
                logger.info("Email (console backend) to=%s subject=%r", to_email, subject)
            elif backend == "smtp":
                from_header = self._from_header()
                if not from_header:
                    raise EmailDeliveryError("Sender address is not configured")
                msg = EmailMessage()
                msg["From"] = from_header
                msg["To"] = to_email
                msg["Subject"] = subject
                msg.set_content(text_body)
                if html_body:
                    msg.add_alternative(html_body, subtype="html")
                self._send_smtp(msg)
            elif backend in self._http_backends:
                send = getattr(self, self._http_backends[backend])
                send(to_email=to_email, subject=subject, text_body=text_body, html_body=html_body)
            else:
                raise EmailDeliveryError(f"Unknown email backend {backend!r}")
        except EmailDeliveryError as exc:
            logger.error("Email to %s not delivered via %s: %s", to_email, backend, exc)
            return False

        logger.info("Email sent to %s via %s in %.0fms", to_email, backend, (time.monotonic() - started) * 1000)
        return True

    def confirmation_link(self, *, email: str, token: str) -> str:
        query = urlencode({"token": token, "email": email})
        return f"{self.config.base_url}/confirm?{query}"

    def send_welcome_email(self, *, to_email: str, token: str, node_id: str) -> bool:
        link = self.confirmation_link(email=to_email, token=token)
        subject = "Lumeo Early Access - Confirm your email"
        text_body = (
            "Your request for Lumeo early access has been registered.\n\n"
            f"Confirm your email to lock in your spot: {link}\n\n"
            "If you did not request access, you can ignore this email."
        )
        html_body = self._render_html_template(
            preheader="Confirm your email to secure your Lumeo early access spot.",
            badge="System Access :: Pending",
            title="Initiation Sequence Started.",
            message_html=(
                "<p style=\"margin:0 0 16px 0;\">Your request for early access has been "
                "<span style=\"color:#ffffff;\">successfully registered</span>.</p>"
                "<p style=\"margin:0;\">Confirm your email to join the node network.</p>"
            ),
            rows=[("Status", "AWAITING_CONFIRMATION"), ("Node ID", node_id)],
            cta_text="Confirm my email",
            cta_link=link,
            footer_note="If you did not request access, you can ignore this email.",
        )
        return self.send_email(to_email=to_email, subject=subject, text_body=text_body, html_body=html_body)

    def send_confirmation_email(self, *, to_email: str, node_id: str) -> bool:
        link = self.config.base_url
        subject = "You're in! Welcome to Lumeo Early Access"
        text_body = (
            "Your email is confirmed and your spot on the Lumeo early access list is secured.\n\n"
            "We will reach out as soon as your access opens.\n\n"
            f"{link}"
        )
        html_body = self._render_html_template(
            preheader="Your Lumeo early access spot is confirmed.",
            badge="System Access :: Granted",
            title="Initiation Sequence Complete.",
            message_html=(
                "<p style=\"margin:0 0 16px 0;\">Welcome to the node network. Your email is "
                "<span style=\"color:#ffffff;\">confirmed</span>.</p>"
                "<p style=\"margin:0;\">Lumeo is building a wallet-native, non-custodial protocol "
                "where money moves at the speed of data. We will reach out as soon as your access opens.</p>"
            ),
            rows=[("Status", "WAITLIST_VERIFIED"), ("Node ID", node_id)],
            cta_text="Visit Lumeo",
            cta_link=link,
            footer_note="You are receiving this because you confirmed early access to Lumeo.",
        )
        return self.send_email(to_email=to_email, subject=subject, text_body=text_body, html_body=html_body)


# Process-wide instance, built once from settings
email_service = EmailService()


def get_email_service() -> EmailService:
    return email_service
