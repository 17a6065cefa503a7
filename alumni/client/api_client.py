"""
HTTP client for the events API.

Every request carries an explicit timeout. Failures come back as one of two
exceptions:
- ApiRejected: the server answered with an error body (has a 'reason')
- TransportError: no usable answer (network error, timeout, garbage body)
"""

import logging
import requests

from alumni import contract
from alumni.client.context import ViewerContext

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10  # seconds


class ApiRejected(Exception):
    """The server refused the request."""

    def __init__(self, status_code: int, reason: str, message: str = None, payload: dict = None):
        self.status_code = status_code
        self.reason = reason
        self.message = message or contract.message_for(reason)
        self.payload = payload or {}
        super().__init__(f'{status_code} {reason}: {self.message}')


class TransportError(Exception):
    """The request never produced a server verdict."""

    def __init__(self, reason: str, message: str = None):
        self.reason = reason
        self.message = message or contract.message_for(reason)
        super().__init__(f'{reason}: {self.message}')


class EventsApiClient:
    """Calls the events API on behalf of one viewer."""

    def __init__(self, base_url: str, viewer: ViewerContext, timeout: float = DEFAULT_TIMEOUT,
                 session: requests.Session = None):
        self.base_url = base_url.rstrip('/')
        self.viewer = viewer
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f'{self.base_url}{path}'
        headers = dict(kwargs.pop('headers', {}), **self.viewer.auth_header)

        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.Timeout:
            logger.warning(f"{method} {path} timed out after {self.timeout}s")
            raise TransportError(contract.REASON_TIMEOUT)
        except requests.RequestException as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise TransportError(contract.REASON_TRANSPORT_ERROR, str(e))

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.ok:
            if not isinstance(body, dict):
                raise TransportError(contract.REASON_TRANSPORT_ERROR, 'Unexpected response from server')
            return body

        if not isinstance(body, dict):
            body = {}
        reason = body.get('reason') or (
            contract.REASON_SERVER_ERROR if response.status_code >= 500 else contract.REASON_VALIDATION_FAILED
        )
        raise ApiRejected(response.status_code, reason, body.get('error'), body)

    def list_events(self, **params) -> dict:
        return self._request('GET', '/api/events', params=params)

    def get_event(self, event_id: int) -> dict:
        """Event summary."""
        return self._request('GET', f'/api/events/{event_id}')['event']

    def register(self, event_id: int) -> dict:
        return self._request('POST', f'/api/events/{event_id}/register')

    def cancel(self, event_id: int) -> dict:
        return self._request('DELETE', f'/api/events/{event_id}/register')
