"""HTTP collaborator: sends built requests to the target API via requests."""

import logging
from typing import Any

import requests
from pydantic import BaseModel

from api_sequencer.errors import ApiError, NetworkFailure
from api_sequencer.models import Success

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class RequestDescriptor(BaseModel):
    """A concrete request produced by the parameter builder."""

    method: str
    url: str
    query: dict[str, str] = {}
    body: str | None = None  # raw JSON text

    @property
    def display_url(self) -> str:
        request = requests.Request(self.method, self.url, params=self.query).prepare()
        return request.url


class HttpResponse(BaseModel):
    status: int
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def error_message(self) -> str:
        """First message of an ``{"errors": [{"message": ...}]}`` envelope."""
        if isinstance(self.body, dict):
            errors = self.body.get("errors")
            if isinstance(errors, list) and errors and isinstance(errors[0], dict):
                message = errors[0].get("message")
                if message:
                    return str(message)
        return "API call failed"


class HttpClient:
    """Bearer-token JSON client over a shared requests.Session."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.session = session or requests.Session()
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session.headers["Accept"] = "application/json"
        self.set_token(token)

    def set_token(self, token: str) -> None:
        self.token = token
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        else:
            self.session.headers.pop("Authorization", None)

    def send(self, request: RequestDescriptor) -> HttpResponse:
        """Issue the request and decode the JSON response.

        Any status is returned; only transport errors and undecodable
        success bodies raise NetworkFailure.
        """
        headers = {}
        data = None
        if request.body is not None:
            headers["Content-Type"] = "application/json"
            data = request.body.encode("utf-8")

        logger.debug("%s %s", request.method, request.display_url)
        try:
            resp = self.session.request(
                request.method,
                request.url,
                params=request.query,
                data=data,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise NetworkFailure(str(e)) from e

        body = None
        if resp.content:
            try:
                body = resp.json()
            except ValueError as e:
                if 200 <= resp.status_code < 300:
                    raise NetworkFailure(f"Invalid JSON response: {e}") from e
                body = None

        logger.debug("-> %s", resp.status_code)
        return HttpResponse(status=resp.status_code, body=body)

    def execute(self, request: RequestDescriptor) -> Success:
        """Send the request and convert a 2xx response into a Success.

        Non-2xx responses raise ApiError regardless of the body shape.
        """
        response = self.send(request)
        if not response.ok:
            raise ApiError(response.status, response.error_message())
        return Success(http_status=response.status, data=unwrap_data(response.body), payload=response.body)


def unwrap_data(body: Any) -> Any:
    """The ``data`` member of a ``{"data": ...}`` envelope, else the body itself."""
    if isinstance(body, dict) and "data" in body:
        return body["data"]
    return body
