"""Progress e-mails for handcrafted order lines.

The notifier is built once from settings and handed to the order service;
nothing here is a module-level singleton.
"""

import os
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Optional, Protocol, Tuple

import structlog

from errors import NotificationFailed

logger = structlog.get_logger(__name__)


class Notifier(Protocol):
    def send(self, recipient: str, subject: str, html_body: str) -> None: ...


@dataclass(frozen=True)
class EmailSettings:
    host: str = "smtp.gmail.com"
    port: int = 587
    use_tls: bool = True
    username: Optional[str] = None
    password: Optional[str] = None
    sender_name: str = "Boutique"
    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> "EmailSettings":
        return cls(
            host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
            port=int(os.getenv("SMTP_PORT", "587")),
            use_tls=os.getenv("SMTP_USE_TLS", "true").lower() in ("1", "true", "yes"),
            username=os.getenv("EMAIL_USER"),
            password=os.getenv("EMAIL_PASS"),
            sender_name=os.getenv("SHOP_NAME", "Boutique"),
        )


class SmtpNotifier:
    def __init__(self, settings: EmailSettings):
        self.settings = settings

    def _build_message(self, recipient: str, subject: str, html_body: str) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["From"] = f'"{self.settings.sender_name}" <{self.settings.username or ""}>'
        message["To"] = recipient
        message["Subject"] = subject
        message.attach(MIMEText(html_body, "html", "utf-8"))
        return message

    def send(self, recipient: str, subject: str, html_body: str) -> None:
        message = self._build_message(recipient, subject, html_body)
        try:
            with smtplib.SMTP(self.settings.host, self.settings.port, timeout=self.settings.timeout) as smtp:
                if self.settings.use_tls:
                    smtp.starttls()
                if self.settings.username:
                    smtp.login(self.settings.username, self.settings.password or "")
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Notification e-mail failed", recipient=recipient, subject=subject, error=str(exc))
            raise NotificationFailed(recipient, str(exc)) from exc
        logger.info("Notification e-mail sent", recipient=recipient, subject=subject)


def progress_email(
    customer_name: str,
    order_id: str,
    product_title: str,
    color: str,
    progress: int,
    shop_name: str,
    article_index: Optional[int] = None,
) -> Tuple[str, str]:
    """Subject and French HTML body for a fabrication progress update."""
    short_id = str(order_id)[:8]
    customer_name, product_title, color = escape(customer_name), escape(product_title), escape(color)
    article = f" (Article #{article_index})" if article_index else ""

    if progress == 100:
        subject = f"Commande {short_id}{article} – Votre création est prête !"
        status = "<p><strong>Bonne nouvelle !</strong> Votre article est prêt pour la livraison.</p>"
    else:
        subject = f"Commande {short_id}{article} – Suivi de la confection artisanale ({progress}%)"
        status = "<p>Nous vous tiendrons informé dès que la confection sera terminée.</p>"

    body = f"""
      <div style="font-family: Arial, sans-serif; line-height: 1.6;">
        <p><strong>Bonjour {customer_name}</strong>,</p>
        <p>
          Votre article <strong>{product_title}</strong> (Couleur : <strong>{color}</strong>){article},
          dans la commande n°<strong>{short_id}</strong>, est actuellement <strong>terminé à {progress}%</strong>.
        </p>
        {status}
        <hr />
        <p style="font-size: 0.9em; color: #666;">
          Merci pour votre confiance.<br />
          {shop_name}
        </p>
      </div>
    """
    return subject, body
