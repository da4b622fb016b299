"""Realtime client connection with bounded reconnect.

States::

    DISCONNECTED -> CONNECTING -> CONNECTED
    CONNECTED    -> BACKOFF (server dropped us) -> CONNECTING ...
    BACKOFF      -> DISCONNECTED (token rejected or attempts exhausted)

Before every reconnect attempt the stored token is checked against
``POST /auth/verify-token``. A rejected token ends the session right away and
``on_session_expired`` is called so the caller can force a new login.
Broadcasts are invalidation hints: handlers should re-fetch over REST.
"""

import logging
import time
from enum import Enum
from functools import partial

import requests
import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError

logger = logging.getLogger(__name__)

EVENTS = ('emergency', 'status-update', 'notification', 'hospital-created', 'stats-updated')


class ConnectionState(Enum):
    DISCONNECTED = 'DISCONNECTED'
    CONNECTING = 'CONNECTING'
    CONNECTED = 'CONNECTED'
    BACKOFF = 'BACKOFF'


class RealtimeConnection:

    def __init__(self, server_url, api_url, token_provider, on_session_expired=None,
                 namespace='/notifications', max_attempts=5, retry_delay=5.0,
                 client_factory=socketio.Client, http=None, sleep=time.sleep):
        self.server_url = server_url
        self.api_url = api_url.rstrip('/')
        self.token_provider = token_provider
        self.on_session_expired = on_session_expired
        self.namespace = namespace
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.client_factory = client_factory
        self.http = http or requests.Session()
        self.sleep = sleep

        self.state = ConnectionState.DISCONNECTED
        self.attempts = 0
        self._client = None
        self._bound = set()
        self._handlers = {}

    # ==================== EVENT HANDLERS ====================

    def on(self, event, handler):
        handlers = self._handlers.setdefault(event, [])
        if handler not in handlers:
            handlers.append(handler)
        if self._client is not None:
            self._bind(event)

    def off(self, event, handler):
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            self._handlers.pop(event, None)

    def _bind(self, event):
        if event not in self._bound:
            self._client.on(event, partial(self._dispatch, event), namespace=self.namespace)
            self._bound.add(event)

    def _dispatch(self, event, *args):
        for handler in list(self._handlers.get(event, ())):
            try:
                handler(*args)
            except Exception:
                logger.exception(f"Handler for {event} failed")

    # ==================== CONNECTION ====================

    def connect(self):
        if self.state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return
        token = self.token_provider()
        if not token:
            self._expire("No token available. Please login again.")
            return
        self.attempts = 0
        if not self._open(token):
            self._reconnect()

    def disconnect(self):
        # state first, so the client's own disconnect event is not taken as a drop
        self.state = ConnectionState.DISCONNECTED
        self.attempts = 0
        client, self._client = self._client, None
        self._bound = set()
        if client is not None:
            client.disconnect()

    def verify_token(self, token):
        """True when the API accepts ``token``; transport errors propagate"""
        if not token:
            return False
        response = self.http.post(
            f"{self.api_url}/auth/verify-token",
            headers={'Authorization': f"Bearer {token}"},
            timeout=10,
        )
        if response.status_code in (401, 403):
            return False
        response.raise_for_status()
        return True

    def _open(self, token):
        self.state = ConnectionState.CONNECTING
        client = self.client_factory(reconnection=False)
        client.on('connect', self._on_connect, namespace=self.namespace)
        client.on('disconnect', self._on_disconnect, namespace=self.namespace)
        client.on('connect_error', self._on_connect_error, namespace=self.namespace)
        self._client = client
        self._bound = set()
        for event in set(EVENTS) | set(self._handlers):
            self._bind(event)

        try:
            client.connect(
                self.server_url,
                namespaces=[self.namespace],
                auth={'token': token},
                transports=['websocket', 'polling'],
            )
        except SocketConnectionError as e:
            logger.warning(f"Connection error: {str(e)}")
            self._client = None
            self.state = ConnectionState.BACKOFF
            return False
        self._mark_connected()
        return True

    def _reconnect(self):
        while self.attempts < self.max_attempts:
            self.attempts += 1
            self.state = ConnectionState.BACKOFF
            logger.info(f"Attempting to reconnect ({self.attempts}/{self.max_attempts})...")
            self.sleep(self.retry_delay)

            token = self.token_provider()
            try:
                valid = self.verify_token(token)
            except requests.RequestException as e:
                logger.warning(f"Error verifying token: {str(e)}")
                continue
            if not valid:
                self._expire("Invalid token. Please login again.")
                return
            if self._open(token):
                return
        self._expire("Max reconnect attempts reached. Please login again.")

    def _expire(self, reason):
        logger.error(reason)
        self.disconnect()
        if self.on_session_expired is not None:
            self.on_session_expired()

    def _mark_connected(self):
        if self.state is not ConnectionState.CONNECTED:
            self.state = ConnectionState.CONNECTED
            self.attempts = 0
            logger.info("Connected to realtime server")

    # ==================== SOCKET CALLBACKS ====================

    def _on_connect(self):
        self._mark_connected()

    def _on_connect_error(self, data=None):
        logger.warning(f"Connection refused: {data}")

    def _on_disconnect(self, *args):
        if self.state is not ConnectionState.CONNECTED:
            return
        logger.info("Disconnected from realtime server")
        self._client = None
        self._bound = set()
        self._reconnect()
