import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Set

from helpers.utils.errors import InvalidSignalError, JanusError, EchoSessionError, EchoTimeoutError
from helpers.utils.janus_rest_client import JanusEvent, JanusRestClient

logger = logging.getLogger(__name__)

SESSION_FAILED_REASON = "Failed to create Janus session."
PLUGIN_FAILED_REASON = "Failed to create Janus Echo Test Plugin instance."
TIMEOUT_REASON = "Janus operation timed out waiting for Echo Test plugin SDP answer."
EVENTS_FAILED_REASON = "Lost the Janus event stream before the Echo Test plugin SDP answer arrived."

class EchoState(str, Enum):
  created = "created"
  plugin_started = "plugin-started"
  awaiting_answer = "awaiting-answer"
  answered = "answered"
  failed = "failed"
  timed_out = "timed-out"
  destroyed = "destroyed"

@dataclass
class EchoSession:
  """State for a single echo test request. Never reused."""
  duration: float
  deadline: float
  answer: asyncio.Future
  session_id: Optional[int] = None
  handle_id: Optional[int] = None
  state: EchoState = EchoState.created
  subscription: Optional[asyncio.Task] = field(default=None, repr=False)

  def remaining(self) -> float:
    return max(self.deadline - asyncio.get_running_loop().time(), 0)

  def on_event(self, event: JanusEvent):
    jsep = event.get("jsep")
    if not isinstance(jsep, dict) or jsep.get("type") != "answer" or not jsep.get("sdp"):
      return

    # Only the first answer counts, anything after a timeout or failure is dropped
    if self.answer.done():
      logger.debug(f"Ignoring late Janus answer for session {self.session_id}.")
      return

    logger.debug(f"Janus event jsep={jsep['type']} for session {self.session_id}.")
    self.answer.set_result(jsep["sdp"])

  def on_events_lost(self, error: Exception):
    if self.answer.done():
      return
    self.answer.set_exception(EchoSessionError(EVENTS_FAILED_REASON))

class EchoOrchestrator:
  """
  Runs a Janus Echo Test negotiation for one SDP offer and returns the answer.

  Each request creates a Janus session, attaches the echo test plugin with the
  offer and waits for the answer to arrive on the session's event long poll.
  Every step is bounded by the requested duration, clamped to max_duration.
  A failed or timed out request always destroys its Janus session. On success
  the session is kept polled until the deadline so the echo keeps running,
  after which Janus expires it on its own.
  """

  def __init__(self, relay_client: JanusRestClient, max_duration: float = 180):
    self.relay_client = relay_client
    self.max_duration = max_duration
    self._background_tasks: Set[asyncio.Future] = set()

  def clamp_duration(self, requested: Optional[float]) -> float:
    if requested is None:
      return self.max_duration
    if requested <= 0:
      raise InvalidSignalError("Echo test duration must be a positive number of seconds")
    return min(requested, self.max_duration)

  async def run_echo_test(self, offer: str, duration: Optional[float] = None) -> str:
    if not offer or not offer.strip():
      raise InvalidSignalError("SDP offer is empty")

    duration = self.clamp_duration(duration)
    loop = asyncio.get_running_loop()
    session = EchoSession(
      duration=duration,
      deadline=loop.time() + duration,
      answer=loop.create_future()
    )

    logger.debug(f"Creating Janus echo test with duration {duration}s.")

    try:
      answer = await self._negotiate(session, offer)
    except BaseException:
      # Covers plugin failure, timeout and the caller going away
      if session.session_id is not None:
        await self._teardown(session)
      raise

    session.state = EchoState.answered
    self._release_at_deadline(session)
    logger.debug("SDP answer ready, sending to client.")
    return answer

  async def _negotiate(self, session: EchoSession, offer: str) -> str:
    # Shielded so a request already sent to Janus is not abandoned with a live session
    create = asyncio.ensure_future(self.relay_client.create_session())
    try:
      session.session_id = await asyncio.wait_for(asyncio.shield(create), session.remaining())
    except JanusError as e:
      session.state = EchoState.failed
      logger.warning(f"Janus session creation failed: {e}")
      raise EchoSessionError(SESSION_FAILED_REASON) from e
    except asyncio.TimeoutError as e:
      session.state = EchoState.timed_out
      logger.warning(f"Janus session creation did not finish within {session.duration}s, destroying it if it completes.")
      create.add_done_callback(self._destroy_abandoned_session)
      raise EchoTimeoutError(TIMEOUT_REASON) from e
    except asyncio.CancelledError:
      create.add_done_callback(self._destroy_abandoned_session)
      raise

    session.subscription = self.relay_client.subscribe(
      session.session_id,
      session.on_event,
      on_error=session.on_events_lost
    )

    try:
      session.handle_id = await asyncio.wait_for(
        self.relay_client.start_echo(session.session_id, offer),
        session.remaining()
      )
    except JanusError as e:
      session.state = EchoState.failed
      logger.warning(f"Janus echo test plugin failed for session {session.session_id}: {e}")
      raise EchoSessionError(PLUGIN_FAILED_REASON) from e
    except asyncio.TimeoutError as e:
      session.state = EchoState.timed_out
      raise EchoTimeoutError(TIMEOUT_REASON) from e

    session.state = EchoState.plugin_started

    # The answer comes back on the long poll task, not from start_echo
    session.state = EchoState.awaiting_answer
    try:
      return await asyncio.wait_for(session.answer, session.remaining())
    except EchoSessionError:
      session.state = EchoState.failed
      logger.warning(f"Janus event stream for session {session.session_id} ended before an answer arrived.")
      raise
    except asyncio.TimeoutError as e:
      session.state = EchoState.timed_out
      logger.info(f"Janus session {session.session_id} timed out after {session.duration}s without an answer.")
      raise EchoTimeoutError(TIMEOUT_REASON) from e

  async def _teardown(self, session: EchoSession):
    if session.state == EchoState.destroyed:
      return
    session.state = EchoState.destroyed

    if not session.answer.done():
      session.answer.cancel()
    elif not session.answer.cancelled():
      # Mark a lost event stream as seen when an earlier step already failed
      session.answer.exception()
    if session.subscription is not None:
      session.subscription.cancel()

    await self._destroy_session(session.session_id)

  async def _destroy_session(self, session_id: int):
    try:
      await self.relay_client.destroy_session(session_id)
    except JanusError as e:
      logger.warning(f"Failed to destroy Janus session {session_id}: {e}")

  def _destroy_abandoned_session(self, create: asyncio.Future):
    if create.cancelled() or create.exception() is not None:
      return

    session_id = create.result()
    logger.info(f"Destroying Janus session {session_id} created after its echo test gave up.")
    self._track(asyncio.ensure_future(self._destroy_session(session_id)))

  def _release_at_deadline(self, session: EchoSession):
    async def release():
      try:
        await asyncio.sleep(session.remaining())
      finally:
        if session.subscription is not None:
          session.subscription.cancel()
        logger.debug(f"Stopped polling Janus session {session.session_id}.")

    self._track(asyncio.create_task(release()))

  def _track(self, task: asyncio.Future):
    self._background_tasks.add(task)
    task.add_done_callback(self._background_tasks.discard)

  async def aclose(self):
    tasks = list(self._background_tasks)
    for task in tasks:
      task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
