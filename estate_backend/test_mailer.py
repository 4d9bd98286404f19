"""
estate_backend/test_mailer.py

Message bodies: user-supplied text is HTML-escaped.

Run:
    pytest estate_backend/test_mailer.py -v
"""

from estate_backend.mailer import send_kyc_rejected, send_verification_code


class TestMessageBodies:

    def test_name_is_escaped(self, mailer):
        send_verification_code(mailer, "a@example.com", "<b>Asha</b>", "123456", 60)
        html = mailer.sent[0]["html"]
        assert "&lt;b&gt;Asha&lt;/b&gt;" in html
        assert "<b>Asha</b>" not in html
        assert "123456" in html

    def test_rejection_reason_is_escaped(self, mailer):
        send_kyc_rejected(mailer, "a@example.com", "Asha", '<a href="https://evil.example">re-upload</a>')
        html = mailer.sent[0]["html"]
        assert "<a href" not in html
        assert "&lt;a href=&quot;https://evil.example&quot;&gt;" in html

    def test_missing_reason(self, mailer):
        send_kyc_rejected(mailer, "a@example.com", "Asha", None)
        assert "Reason: Not specified" in mailer.sent[0]["html"]
