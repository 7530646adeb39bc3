import asyncio
import logging
import secrets
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import httpx

from helpers.utils.errors import JanusError

logger = logging.getLogger(__name__)

ECHO_TEST_PLUGIN = "janus.plugin.echotest"

JanusEvent = Dict[str, Any]
EventCallback = Callable[[JanusEvent], Union[None, Awaitable[None]]]
ErrorCallback = Callable[[Exception], None]

def generate_transaction_id(length: int = 12) -> str:
  return secrets.token_hex(length // 2)

class JanusRestClient:
  """
  Client for the Janus WebRTC server REST API.

  One instance multiplexes any number of Janus sessions over a shared HTTP
  connection pool. Events for a session are fetched with the long poll
  endpoint and handed to a callback registered with subscribe().
  """

  def __init__(self, base_url: str, http_client: Optional[httpx.AsyncClient] = None, long_poll_timeout: float = 35.0):
    self.base_url = base_url.rstrip("/")
    self.long_poll_timeout = long_poll_timeout
    self.http_client = http_client or httpx.AsyncClient(
      timeout=10.0,
      limits=httpx.Limits(max_keepalive_connections=20, max_connections=100),
    )

  def _url(self, *parts) -> str:
    return "/".join([self.base_url] + [str(part) for part in parts])

  @staticmethod
  def _check_reply(request: str, reply: Any) -> Any:
    if isinstance(reply, dict) and reply.get("janus") == "error":
      error = reply.get("error") or {}
      reason = error.get("reason", "unknown error")
      raise JanusError(f"Janus {request} request failed: {reason}", error.get("code"))
    return reply

  async def _request(self, method: str, url: str, request: str, **kwargs) -> Any:
    try:
      response = await self.http_client.request(method, url, **kwargs)
      response.raise_for_status()
      reply = response.json()
    except httpx.HTTPError as e:
      raise JanusError(f"Janus {request} request failed: {e}") from e
    except ValueError as e:
      raise JanusError(f"Janus {request} request returned an invalid body") from e

    return self._check_reply(request, reply)

  async def _post(self, message: dict, *parts) -> dict:
    message = {**message, "transaction": generate_transaction_id()}
    return await self._request("POST", self._url(*parts), message["janus"], json=message)

  async def create_session(self) -> int:
    reply = await self._post({"janus": "create"})
    try:
      return reply["data"]["id"]
    except (KeyError, TypeError) as e:
      raise JanusError("Janus create reply did not contain a session id") from e

  async def attach_plugin(self, session_id: int, plugin: str = ECHO_TEST_PLUGIN) -> int:
    reply = await self._post({"janus": "attach", "plugin": plugin}, session_id)
    try:
      return reply["data"]["id"]
    except (KeyError, TypeError) as e:
      raise JanusError(f"Janus attach reply for {plugin} did not contain a handle id") from e

  async def send_message(self, session_id: int, handle_id: int, body: dict, jsep: Optional[dict] = None) -> dict:
    message = {"janus": "message", "body": body}
    if jsep is not None:
      message["jsep"] = jsep
    return await self._post(message, session_id, handle_id)

  async def start_echo(self, session_id: int, offer: str) -> int:
    """Attach the echo test plugin and hand it the SDP offer, the answer arrives as an event."""
    handle_id = await self.attach_plugin(session_id, ECHO_TEST_PLUGIN)
    await self.send_message(
      session_id,
      handle_id,
      {"audio": True, "video": True},
      {"type": "offer", "sdp": offer}
    )
    return handle_id

  async def destroy_session(self, session_id: int):
    await self._post({"janus": "destroy"}, session_id)
    logger.debug(f"Janus session {session_id} destroyed.")

  async def poll_events(self, session_id: int, max_events: int = 1) -> List[JanusEvent]:
    try:
      reply = await self._request(
        "GET",
        self._url(session_id),
        "long poll",
        params={"maxev": max_events, "rid": generate_transaction_id()},
        timeout=httpx.Timeout(10.0, read=self.long_poll_timeout)
      )
    except JanusError as e:
      # Janus answers with a keepalive before the read timeout, this only covers a slow server
      if isinstance(e.__cause__, httpx.ReadTimeout):
        return []
      raise

    events = reply if isinstance(reply, list) else [reply]
    return [event for event in events if isinstance(event, dict) and event.get("janus") != "keepalive"]

  async def _event_loop(self, session_id: int, callback: EventCallback, on_error: Optional[ErrorCallback]):
    while True:
      try:
        events = await self.poll_events(session_id)
        for event in events:
          result = callback(event)
          if asyncio.iscoroutine(result):
            await result
      except Exception as e:
        logger.warning(f"Janus event long poll for session {session_id} stopped: {e}")
        if on_error is None:
          raise
        on_error(e)
        return

  def subscribe(self, session_id: int, callback: EventCallback, on_error: Optional[ErrorCallback] = None) -> asyncio.Task:
    """
    Start delivering the session's events to callback, cancel the returned task to stop.

    If the long poll fails or callback raises, polling stops and on_error is
    called with the exception. Without on_error the exception ends the task.
    """
    return asyncio.create_task(self._event_loop(session_id, callback, on_error), name=f"janus-events-{session_id}")

  async def aclose(self):
    await self.http_client.aclose()
