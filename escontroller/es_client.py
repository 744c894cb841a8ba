# escontroller/es_client.py
import logging
import os
from dataclasses import dataclass
from typing import Optional, Tuple

import requests

from escontroller import settings
from escontroller.errors import TransientError


@dataclass
class Response:
    status_code: int
    body: bytes

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class ESClient:
    """Issues requests against one Elasticsearch cluster.

    Paths are relative to the cluster endpoint, e.g. "/_cluster/settings".
    A ca_file, when given, is used to verify the server certificate and is
    removed on close.
    """

    def __init__(
        self,
        endpoint: str,
        auth: Optional[Tuple[str, str]] = None,
        verify=settings.ES_VERIFY_TLS,
        timeout: float = settings.ES_REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
        ca_file: Optional[str] = None,
    ):
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)
        self.session = session or requests.Session()
        if auth:
            self.session.auth = auth
        self.ca_file = ca_file
        self.session.verify = ca_file if (verify and ca_file) else verify

    def request(self, method: str, path: str, body: Optional[bytes] = None, timeout: Optional[float] = None) -> Response:
        url = f"{self.endpoint}{path}"
        headers = {"Content-Type": "application/json"} if body is not None else None
        try:
            r = self.session.request(
                method, url, data=body, headers=headers, timeout=timeout or self.timeout
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            raise TransientError(f"{method} {path}: {e}") from e
        return Response(status_code=r.status_code, body=r.content)

    def get(self, path: str, timeout: Optional[float] = None) -> Response:
        return self.request("GET", path, timeout=timeout)

    def put(self, path: str, body: bytes, timeout: Optional[float] = None) -> Response:
        return self.request("PUT", path, body=body, timeout=timeout)

    def close(self):
        self.session.close()
        if self.ca_file and os.path.exists(self.ca_file):
            os.remove(self.ca_file)
