"""
Transactional email through the Resend REST API.
"""
import html
import os
from typing import Any, Dict
from urllib.parse import quote

import requests

from config import get_app_base_url
from utils.error_manager import ErrorManager
from utils.logger import get_logger

logger = get_logger("email")

RESEND_API_URL = "https://api.resend.com/emails"
SENDER = "Auracle Film Studio <onboarding@resend.dev>"


def build_confirmation_url(base_url: str, token: str, email: str) -> str:
    return f"{base_url.rstrip('/')}/auth/confirm?token={quote(token)}&email={quote(email, safe='')}"


def render_confirmation_html(username: str, confirmation_url: str) -> str:
    username = html.escape(username)
    confirmation_url = html.escape(confirmation_url)
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">
  <div style="text-align: center; margin-bottom: 30px;">
    <h1 style="color: #ff1493; font-size: 28px; margin: 0;">Auracle Film Studio</h1>
    <p style="color: #666; font-size: 16px; margin: 10px 0 0 0;">AI-Powered Cinematic Storytelling</p>
  </div>
  <div style="background: #f8f9fa; border-radius: 12px; padding: 30px; margin-bottom: 30px;">
    <h2 style="color: #333; font-size: 24px; margin: 0 0 15px 0;">Hi {username}!</h2>
    <p style="color: #666; font-size: 16px; line-height: 1.6;">
      Thank you for signing up for Auracle Film Studio. Please confirm your email address
      by clicking the button below.
    </p>
    <div style="text-align: center; margin: 30px 0;">
      <a href="{confirmation_url}" style="background: #ff1493; color: white; padding: 15px 30px; border-radius: 8px; text-decoration: none; font-weight: bold;">
        Confirm Your Email
      </a>
    </div>
    <p style="color: #888; font-size: 14px;">
      If the button doesn't work, copy and paste this link into your browser:<br>
      <a href="{confirmation_url}" style="color: #ff1493; word-break: break-all;">{confirmation_url}</a>
    </p>
  </div>
  <div style="text-align: center; color: #888; font-size: 14px;">
    <p>This confirmation link will expire in 24 hours.</p>
    <p>If you didn't create an account with Auracle Film Studio, you can safely ignore this email.</p>
  </div>
</div>
"""


class EmailService:
    def __init__(self, api_key: str = None, timeout: float = 15.0):
        self.api_key = api_key or os.getenv("RESEND_API_KEY")
        self.timeout = timeout

    def send_confirmation_email(self, email: str, token: str, username: str, base_url: str = None) -> Dict[str, Any]:
        """
        Send the account confirmation email. The link points at base_url,
        else APP_BASE_URL.

        Returns:
            {"success": True, "data": <resend response>} or {"success": False, "error": <message>}
        """
        if not self.api_key:
            logger.warning("RESEND_API_KEY not set, confirmation email not sent")
            return {"success": False, "error": "RESEND_API_KEY is not set"}

        confirmation_url = build_confirmation_url(base_url or get_app_base_url(), token, email)
        payload = {
            "from": SENDER,
            "to": [email],
            "subject": "Confirm your Auracle Film Studio account",
            "html": render_confirmation_html(username, confirmation_url),
        }

        try:
            response = requests.post(
                RESEND_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Failed to send confirmation email: {e}")
            ErrorManager.log_error("EmailService", "Confirmation email failed", str(e))
            return {"success": False, "error": str(e)}

        logger.info(f"Confirmation email sent to {email}")
        return {"success": True, "data": response.json()}
