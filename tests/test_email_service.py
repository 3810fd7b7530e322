"""
Confirmation email tests; the Resend API is replaced by a fake requests.post.
"""
import sys
import os
import requests

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from utils.email_service import EmailService, build_confirmation_url, render_confirmation_html


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")

    def json(self):
        return self.payload


class TestConfirmationUrl:

    def test_url_is_quoted(self):
        url = build_confirmation_url("https://app.example/", "tok en", "ada+film@example.com")
        assert url == "https://app.example/auth/confirm?token=tok%20en&email=ada%2Bfilm%40example.com"

    def test_html_contains_link(self):
        html = render_confirmation_html("ada", "https://app.example/auth/confirm?token=t")
        assert "Hi ada!" in html
        assert html.count("https://app.example/auth/confirm?token=t") == 2


class TestEmailService:

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("RESEND_API_KEY", raising=False)
        result = EmailService().send_confirmation_email("a@example.com", "t", "a", "http://localhost:5173")
        assert result == {"success": False, "error": "RESEND_API_KEY is not set"}

    def test_sends_through_resend(self, monkeypatch):
        sent = []

        def fake_post(url, json, headers, timeout):
            sent.append((url, json, headers))
            return FakeResponse({"id": "email_123"})

        monkeypatch.setattr(requests, "post", fake_post)
        result = EmailService(api_key="re_test").send_confirmation_email(
            "a@example.com", "tok", "ada", "http://localhost:5173"
        )

        assert result == {"success": True, "data": {"id": "email_123"}}
        url, payload, headers = sent[0]
        assert url == "https://api.resend.com/emails"
        assert payload["to"] == ["a@example.com"]
        assert payload["subject"] == "Confirm your Auracle Film Studio account"
        assert headers["Authorization"] == "Bearer re_test"

    def test_provider_error(self, monkeypatch):
        monkeypatch.setattr(requests, "post", lambda url, json, headers, timeout: FakeResponse({}, 422))
        result = EmailService(api_key="re_test").send_confirmation_email("a@example.com", "t", "a", "http://x")
        assert result["success"] is False
        assert "422" in result["error"]


class TestUntrustedInput:

    def test_username_is_escaped(self):
        html = render_confirmation_html('<a href="https://evil.example">ada</a>', "https://app.example/auth/confirm?token=t")
        assert "evil.example\">" not in html
        assert "Hi &lt;a href=&quot;https://evil.example&quot;&gt;ada&lt;/a&gt;!" in html

    def test_link_uses_configured_base_url(self, monkeypatch):
        sent = []
        monkeypatch.setenv("APP_BASE_URL", "https://studio.auracle.example")
        monkeypatch.setattr(requests, "post", lambda url, json, headers, timeout: sent.append(json) or FakeResponse({}))
        EmailService(api_key="re_test").send_confirmation_email("a@example.com", "tok", "ada")
        assert "https://studio.auracle.example/auth/confirm?token=tok" in sent[0]["html"]
