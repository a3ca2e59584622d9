"""Tests for the email and reCAPTCHA adapters."""
import smtplib

import httpx
import pytest

from jobportal.config.settings import CaptchaSettings, EmailSettings
from jobportal.core.exceptions import DeliveryError, ValidationError
from jobportal.services.captcha import CaptchaService
from jobportal.services.email import EmailService


def captcha_with(handler, **overrides) -> CaptchaService:
    captcha_settings = CaptchaSettings(secret_key="server-secret", **overrides)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CaptchaService(captcha_settings, http_client=client)


async def test_test_secret_short_circuits():
    """Test that the published test key always scores 0.9."""
    service = CaptchaService(CaptchaSettings())

    result = await service.verify_token("anything")
    assert result.success
    assert result.score == 0.9


async def test_scores_below_threshold_are_rejected():
    service = captcha_with(lambda request: httpx.Response(200, json={"success": True, "score": 0.4}))

    await service.require_login("token", "1.2.3.4")
    with pytest.raises(ValidationError):
        await service.require_signup("token", "1.2.3.4")


async def test_failed_verification_is_rejected():
    service = captcha_with(lambda request: httpx.Response(200, json={"success": False}))

    with pytest.raises(ValidationError):
        await service.require_login("token", None)


async def test_missing_token_is_rejected_when_enabled():
    service = captcha_with(lambda request: httpx.Response(200, json={"success": True, "score": 1}))

    with pytest.raises(ValidationError):
        await service.require_signup(None, None)


async def test_disabled_captcha_skips_checks():
    service = captcha_with(lambda request: httpx.Response(500), enabled=False)

    await service.require_signup(None, None)


async def test_unreachable_endpoint_is_a_delivery_error():
    service = captcha_with(lambda request: httpx.Response(503))

    with pytest.raises(DeliveryError):
        await service.require_login("token", None)


async def test_email_dev_mode_logs_instead_of_sending():
    """Test that no SMTP host means log-only delivery."""
    service = EmailService(EmailSettings(smtp_host=None))

    assert not service.is_configured
    assert await service.send_verification_code("a@example.com", "123456", "A") is True


async def test_email_smtp_failure_reports_false(monkeypatch):
    """Test that SMTP errors become a False return."""

    def refuse(*args, **kwargs):
        raise smtplib.SMTPConnectError(421, "unavailable")

    monkeypatch.setattr(smtplib, "SMTP", refuse)
    service = EmailService(EmailSettings(smtp_host="smtp.example.com", smtp_use_tls=True))

    assert await service.send_password_reset("a@example.com", "f" * 64, "A") is False


async def test_email_encoding_failure_reports_false(monkeypatch):
    """Test that a non-ASCII address the server cannot take is a failed delivery."""

    class AsciiOnlySMTP:
        def __init__(self, *args, **kwargs):
            pass

        def __enter__(self):
            return self

        def __exit__(self, *exc_info):
            return False

        def starttls(self, context=None):
            pass

        def sendmail(self, from_addr, to_addrs, msg):
            to_addrs.encode("ascii")

    monkeypatch.setattr(smtplib, "SMTP", AsciiOnlySMTP)
    service = EmailService(EmailSettings(smtp_host="smtp.example.com", smtp_use_tls=True))

    assert await service.send_verification_code("jörg@example.com", "123456", "Jörg") is False


def test_frontend_url_trailing_slash_is_trimmed():
    service = EmailService(EmailSettings(frontend_url="https://jobs.example.com/"))

    assert service.frontend_url == "https://jobs.example.com"
