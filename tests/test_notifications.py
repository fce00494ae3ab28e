"""Tests for progress e-mail composition and SMTP dispatch."""

import smtplib

import pytest

import notifications
from errors import NotificationFailed
from notifications import EmailSettings, SmtpNotifier, progress_email


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.started_tls = False
        self.login_args = None
        self.messages = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.started_tls = True

    def login(self, user, password):
        self.login_args = (user, password)

    def send_message(self, message):
        self.messages.append(message)


class RefusingSMTP(FakeSMTP):
    def send_message(self, message):
        raise smtplib.SMTPRecipientsRefused({message["To"]: (550, b"no such user")})


@pytest.fixture(autouse=True)
def reset_instances():
    FakeSMTP.instances = []


class TestProgressEmail:
    def test_in_progress_subject_and_body(self):
        subject, body = progress_email("Amina", "64f1c2ab99", "Aviator", "Noir", 40, "Atelier")

        assert subject == "Commande 64f1c2ab – Suivi de la confection artisanale (40%)"
        assert "Bonjour Amina" in body
        assert "terminé à 40%" in body
        assert "Nous vous tiendrons informé" in body
        assert "Atelier" in body

    def test_finished_subject(self):
        subject, body = progress_email("Amina", "64f1c2ab99", "Aviator", "Noir", 100, "Atelier")

        assert subject == "Commande 64f1c2ab – Votre création est prête !"
        assert "Bonne nouvelle" in body

    def test_article_index_in_subject_and_body(self):
        subject, body = progress_email("Amina", "64f1c2ab99", "Aviator", "Noir", 50, "Atelier", article_index=3)

        assert subject.startswith("Commande 64f1c2ab (Article #3) –")
        assert "(Article #3)" in body

    def test_markup_in_names_is_escaped(self):
        _, body = progress_email("<b>Eve</b>", "64f1c2ab99", "Aviator", "Noir", 50, "Atelier")

        assert "<b>Eve</b>" not in body
        assert "&lt;b&gt;Eve&lt;/b&gt;" in body


class TestSmtpNotifier:
    def test_sends_html_message(self, monkeypatch):
        monkeypatch.setattr(notifications.smtplib, "SMTP", FakeSMTP)
        settings = EmailSettings(host="mail.test", port=2525, username="shop@test", password="secret", sender_name="Atelier")

        SmtpNotifier(settings).send("amina@example.com", "Hello", "<p>Hi</p>")

        smtp = FakeSMTP.instances[0]
        assert (smtp.host, smtp.port) == ("mail.test", 2525)
        assert smtp.started_tls is True
        assert smtp.login_args == ("shop@test", "secret")
        message = smtp.messages[0]
        assert message["To"] == "amina@example.com"
        assert message["Subject"] == "Hello"
        assert "Atelier" in message["From"]

    def test_skips_tls_and_login_when_not_configured(self, monkeypatch):
        monkeypatch.setattr(notifications.smtplib, "SMTP", FakeSMTP)

        SmtpNotifier(EmailSettings(use_tls=False)).send("amina@example.com", "Hello", "<p>Hi</p>")

        smtp = FakeSMTP.instances[0]
        assert smtp.started_tls is False
        assert smtp.login_args is None

    def test_smtp_error_becomes_notification_failed(self, monkeypatch):
        monkeypatch.setattr(notifications.smtplib, "SMTP", RefusingSMTP)

        with pytest.raises(NotificationFailed) as exc_info:
            SmtpNotifier(EmailSettings()).send("amina@example.com", "Hello", "<p>Hi</p>")

        assert exc_info.value.recipient == "amina@example.com"

    def test_connection_error_becomes_notification_failed(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise ConnectionRefusedError("refused")

        monkeypatch.setattr(notifications.smtplib, "SMTP", refuse)

        with pytest.raises(NotificationFailed):
            SmtpNotifier(EmailSettings()).send("amina@example.com", "Hello", "<p>Hi</p>")

    def test_settings_from_env(self, monkeypatch):
        monkeypatch.setenv("SMTP_HOST", "smtp.example.org")
        monkeypatch.setenv("SMTP_PORT", "465")
        monkeypatch.setenv("SMTP_USE_TLS", "false")
        monkeypatch.setenv("EMAIL_USER", "shop@example.org")
        monkeypatch.setenv("SHOP_NAME", "Atelier")

        settings = EmailSettings.from_env()

        assert settings.host == "smtp.example.org"
        assert settings.port == 465
        assert settings.use_tls is False
        assert settings.username == "shop@example.org"
        assert settings.sender_name == "Atelier"
