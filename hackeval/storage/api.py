import os
import logging
from urllib.parse import quote, urljoin
from typing import Any, Mapping, Optional

import requests
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class BlobClient:
    """HTTP client for the blob-upload service.

    Objects are written with ``PUT <base_url>/<key>`` and served from
    ``<public_base_url>/<key>``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        public_base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        load_dotenv()
        url = base_url or os.getenv("BLOB_BASE_URL")
        if not url:
            raise ValueError("Environment variable 'BLOB_BASE_URL' is not set")

        self.base_url = url.rstrip("/")
        self.public_base_url = (
            public_base_url or os.getenv("BLOB_PUBLIC_BASE_URL") or self.base_url
        ).rstrip("/")
        self.api_token = api_token or os.getenv("BLOB_API_TOKEN")
        self.timeout = (
            timeout if timeout is not None else float(os.getenv("BLOB_TIMEOUT", "30"))
        )
        self.session = session or requests.Session()

    # -------- headers --------
    @property
    def auth_headers(self) -> Mapping[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    # -------- core request --------
    def _request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        data: Optional[bytes] = None,
    ) -> requests.Response:
        url = urljoin(self.base_url + "/", path.lstrip("/"))
        r = self.session.request(
            method=method.upper(),
            url=url,
            headers=headers or self.auth_headers,
            data=data,
            timeout=self.timeout,
        )
        r.raise_for_status()
        return r

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{quote(key.lstrip('/'))}"

    # -------- API callers --------
    def upload(
        self,
        payload: bytes,
        key: str,
        content_type: str = "application/octet-stream",
    ) -> str:
        """Store ``payload`` under ``key`` and return its public URL.

        When the service answers with a JSON body carrying ``url``, that URL is
        returned; otherwise the URL is derived from ``public_base_url``.

        Raises
        ------
        requests.RequestException
            On transport failures, timeouts and non-2xx responses.
        """
        headers = {**self.auth_headers, "Content-Type": content_type}
        response = self._request(
            "PUT", quote(key.lstrip("/")), headers=headers, data=payload
        )
        logger.debug("Uploaded %d bytes to blob key %s", len(payload), key)

        body: Any = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = None
        if isinstance(body, dict) and body.get("url"):
            return str(body["url"])
        return self.public_url(key)
