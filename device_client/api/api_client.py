# device_client/api/api_client.py
"""
ApiClient wrapper around requests.Session for the device assignment API.
The session presents the device's client certificate on every request and
verifies the server against the development CA.
"""
from typing import Any, Dict, Optional, Tuple, Union

import requests

DEFAULT_TIMEOUT = 8     # seconds


class ApiError(RuntimeError):
    """Non-2xx response from the API; status_code is None for network errors."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ApiClient:
    """
    Central API client for the device tooling.
    All HTTP traffic MUST go through _request().
    """
    def __init__(self, base_url: str, *, cert: Optional[Tuple[str, str]] = None,
                 ca_file: Optional[str] = None, token: Optional[str] = None,
                 session: Optional[requests.Session] = None,
                 timeout: int = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.token = token
        if cert:
            self.session.cert = cert
        self.session.verify = ca_file if ca_file else True

    # --------------------------------------------------
    # Core request handler (single source of truth)
    # --------------------------------------------------
    def _request(self, method: str, path: str, *, json: Optional[dict] = None,
                 params: Optional[dict] = None, auth: bool = True,
    ) -> Union[Dict[str, Any], list]:
        url = f"{self.base_url}{path}"
        headers = {}
        if auth and self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        try:
            resp = self.session.request(
                method=method,
                url=url,
                json=json,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise ApiError(f"Network error: {e}") from e

        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            # Try extracting FastAPI error message
            try:
                body = resp.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("detail"):
                detail = body["detail"]
            else:
                detail = resp.text or "HTTP Error"
            raise ApiError(f"HTTP {resp.status_code}: {detail}", resp.status_code) from e

        if resp.text.strip() == "":
            return {}
        return resp.json()

    # --------------------------------------------------
    # Device endpoints (client certificate)
    # --------------------------------------------------

    def authenticate(self) -> Dict[str, Any]:
        return self._request("POST", "/api/v1/devices/authenticate", auth=False)

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/health", auth=False)

    # --------------------------------------------------
    # User endpoints (bearer token)
    # --------------------------------------------------

    def get_device(self, device_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/v1/devices/{device_id}")

    def assign(self, device_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/api/v1/devices/{device_id}/assign")

    def unassign(self, device_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/api/v1/devices/{device_id}/unassign")

    def assignment_history(self, device_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/api/v1/devices/{device_id}/assignments")

    def my_devices(self) -> Dict[str, Any]:
        return self._request("GET", "/api/v1/users/me/devices")
