"""
estate_backend/mailer.py

Outbound e-mail for verification codes, password resets and KYC OTPs.

Handlers depend on the Mailer interface through get_mailer(); the default
implementation sends through SendGrid and only logs when no API key is set.
"""

from html import escape
from typing import Optional

import sendgrid
from sendgrid.helpers.mail import Email, HtmlContent, Mail, To

from estate_backend.config import IS_DEV, MAIL_FROM, SENDGRID_API_KEY


class Mailer:
    """Interface: send a message, return True when the provider accepted it."""

    def send(self, to: str, subject: str, html: str) -> bool:
        raise NotImplementedError


class SendGridMailer(Mailer):
    def __init__(self, api_key: Optional[str] = SENDGRID_API_KEY, sender: str = MAIL_FROM):
        self.api_key = api_key
        self.sender = sender

    def send(self, to: str, subject: str, html: str) -> bool:
        if not self.api_key:
            print(f"[MAIL] SENDGRID_API_KEY not set - skipping '{subject}' to {to}")
            return False

        mail = Mail(
            from_email=Email(self.sender, "Estate Marketplace"),
            to_emails=To(to),
            subject=subject,
            html_content=HtmlContent(html),
        )
        try:
            response = sendgrid.SendGridAPIClient(api_key=self.api_key).send(mail)
        except Exception as e:
            print(f"[MAIL] Failed to send '{subject}' to {to}: {type(e).__name__}: {e}")
            return False

        if response.status_code in (200, 201, 202):
            if IS_DEV:
                print(f"[MAIL] Sent '{subject}' to {to}")
            return True
        print(f"[MAIL] SendGrid returned status {response.status_code}: {response.body}")
        return False


_default_mailer = SendGridMailer()


def get_mailer() -> Mailer:
    """FastAPI dependency; tests override it with a recording double."""
    return _default_mailer


# ---------------------------------------------------------
# Message bodies
# ---------------------------------------------------------
def _code_html(heading: str, intro: str, code: str, minutes: int) -> str:
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 480px; margin: 0 auto;">
    <h2 style="color: #1f2937;">{heading}</h2>
    <p style="color: #4b5563;">{intro}</p>
    <p style="font-size: 28px; font-weight: bold; letter-spacing: 6px; color: #065f46;">{code}</p>
    <p style="color: #6b7280; font-size: 13px;">This code expires in {minutes} minutes.</p>
</div>
"""


def send_verification_code(mailer: Mailer, email: str, name: str, code: str, minutes: int) -> bool:
    intro = f"Hi {escape(name)}, use this code to verify your account:"
    html = _code_html("Verify your e-mail", intro, code, minutes)
    return mailer.send(email, "Your verification code", html)


def send_password_reset_code(mailer: Mailer, email: str, code: str, minutes: int) -> bool:
    html = _code_html("Reset your password", "Use this code to reset your password:", code, minutes)
    return mailer.send(email, "Your password reset code", html)


def send_kyc_otp(mailer: Mailer, email: str, name: str, otp: str, minutes: int) -> bool:
    html = _code_html(
        "KYC approved",
        f"Hi {escape(name)}, your KYC has been accepted. Enter this OTP to start posting properties:",
        otp,
        minutes,
    )
    return mailer.send(email, "Your KYC verification OTP", html)


def send_kyc_rejected(mailer: Mailer, email: str, name: str, reason: Optional[str]) -> bool:
    html = f"""
<div style="font-family: Arial, sans-serif; max-width: 480px; margin: 0 auto;">
    <h2 style="color: #1f2937;">KYC not approved</h2>
    <p style="color: #4b5563;">Hi {escape(name)}, your KYC request was rejected.</p>
    <p style="color: #4b5563;">Reason: {escape(reason or "Not specified")}</p>
</div>
"""
    return mailer.send(email, "Your KYC request was rejected", html)
