# session_timeout/client.py
"""
HTTP client for the exam API: the authentication and attempt endpoints the
session core consumes. The requests.Session cookie jar doubles as the cookie
backend of the Session Store, so the mirrored timestamps travel with every call.
"""
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import requests

logger = logging.getLogger(__name__)

API_BASE_URL = os.getenv("EXAM_API_URL", "http://localhost:30010")
REQUEST_TIMEOUT = 30


@dataclass
class AuthResult:
    user: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    redirect: Optional[str] = None


class ApiClient:
    def __init__(self, base_url: Optional[str] = None, http: Optional[requests.Session] = None,
                 timeout: float = REQUEST_TIMEOUT):
        self.base_url = (base_url or API_BASE_URL).rstrip("/")
        self.http = http if http is not None else requests.Session()
        self.timeout = timeout

    @property
    def cookies(self):
        return self.http.cookies

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    @staticmethod
    def _message(response) -> str:
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"
        return body.get("message") or body.get("error") or f"HTTP {response.status_code}"

    # ----------------------------
    # authentication
    # ----------------------------
    def get_current_user(self) -> Optional[Dict[str, Any]]:
        response = self.http.get(self._url("/api/me"), timeout=self.timeout)
        if response.status_code == 401:
            return None
        response.raise_for_status()
        return response.json().get("user")

    def sign_in_with_password(self, email: str, password: str) -> AuthResult:
        try:
            response = self.http.post(
                self._url("/api/login"),
                json={"email": email, "password": password},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error("Login request failed: %s", e)
            return AuthResult(error="Server unreachable")

        if response.status_code != 200:
            return AuthResult(error=self._message(response))
        body = response.json()
        return AuthResult(user=body.get("user"), redirect=body.get("redirect"))

    def sign_out(self) -> Optional[str]:
        """Returns an error message, or None on success."""
        response = self.http.post(self._url("/api/logout"), timeout=self.timeout)
        if response.status_code != 200:
            return self._message(response)
        return None

    def oauth_url(self, provider: str, redirect_to: Optional[str] = None) -> str:
        query = urlencode({"redirect_to": redirect_to}) if redirect_to else ""
        url = self._url(f"/api/auth/oauth/{provider}")
        return f"{url}?{query}" if query else url

    def sign_in_with_oauth(self, provider: str, redirect_to: Optional[str], navigator) -> str:
        """Hands the page host over to the provider's authorize flow."""
        url = self.oauth_url(provider, redirect_to)
        navigator.push(url)
        return url

    # ----------------------------
    # attempts
    # ----------------------------
    def get_active_attempt(self) -> Optional[Dict[str, Any]]:
        response = self.http.get(self._url("/api/attempts/active"), timeout=self.timeout)
        response.raise_for_status()
        return response.json().get("attempt")

    def log_anti_cheat_event(self, attempt_id: str, event_type: str,
                             metadata: Optional[Dict[str, Any]] = None) -> bool:
        """Fire-and-forget: failures are logged and never reach the exam flow."""
        try:
            response = self.http.post(
                self._url(f"/api/attempts/{attempt_id}/anti-cheat"),
                json={"event_type": event_type, "metadata": metadata or {}},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return True
        except Exception as e:
            logger.warning("Anti-cheat log failed: %s", e)
            return False
