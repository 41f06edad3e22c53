import os
import logging
from urllib.parse import urljoin
from typing import Any, Mapping, Optional

import requests
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class NotificationClient:
    """HTTP client for the winner notification dispatcher.

    The dispatcher only ever receives a contact address, the winning token
    and the program name; it learns nothing that links the two beyond what
    the winner volunteered.
    """

    def __init__(
        self,
        base_fqdn: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
    ):
        load_dotenv()
        fqdn = base_fqdn or os.getenv("NOTIFY_BASE_FQDN")
        if not fqdn:
            raise ValueError("Environment variable 'NOTIFY_BASE_FQDN' is not set")

        self.base_url = f"https://{fqdn}".rstrip("/")
        self.api_token = api_token or os.getenv("NOTIFY_API_TOKEN")
        self.session = session or requests.Session()
        self.timeout = timeout

    # -------- headers --------
    @property
    def public_headers(self) -> Mapping[str, str]:
        return {"Accept": "application/json"}

    @property
    def auth_headers(self) -> Mapping[str, str]:
        if not self.api_token:
            return self.public_headers
        return {**self.public_headers, "Authorization": f"Bearer {self.api_token}"}

    # -------- core request --------
    def _request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        json: Optional[dict] = None,
    ) -> Any:
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        r = self.session.request(
            method=method.upper(),
            url=url,
            headers=headers or self.public_headers,
            json=json,
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r.json() if r.content else None

    # -------- API callers --------
    def send_win_notification(
        self,
        email: str,
        winner_token: str,
        program_name: Optional[str] = None,
    ) -> Optional[dict]:
        """Ask the dispatcher to tell ``email`` that ``winner_token`` won.

        Raises
        ------
        requests.RequestException
            If the dispatcher cannot be reached or rejects the request.
        """
        # Never log the address itself.
        logger.debug("Dispatching win notification (recipient redacted)")
        return self._request(
            "POST",
            "/api/v1/notifications/draw-winner",
            headers=self.auth_headers,
            json={
                "email": email,
                "winner_token": winner_token,
                "program_name": program_name,
            },
        )
