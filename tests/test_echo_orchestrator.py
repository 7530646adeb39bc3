"""Tests for the Janus echo test orchestration: answer correlation, timeouts and teardown."""

import asyncio
import json

import httpx
import pytest

from helpers.utils.errors import EchoSessionError, EchoTimeoutError, InvalidSignalError, JanusError
from helpers.utils.janus_rest_client import JanusRestClient
from services.echo_orchestrator import (
  PLUGIN_FAILED_REASON,
  SESSION_FAILED_REASON,
  TIMEOUT_REASON,
  EVENTS_FAILED_REASON,
  EchoOrchestrator,
)


class FakeJanusClient:
  """Stands in for JanusRestClient, answers arrive on the subscription task like the long poll."""

  def __init__(self, answer=None, answer_delay=0.0, fail_create=False, fail_echo=False, extra_events=(), create_delay=0.0):
    self.answer = answer
    self.answer_delay = answer_delay
    self.fail_create = fail_create
    self.fail_echo = fail_echo
    self.extra_events = list(extra_events)
    self.create_delay = create_delay
    self.callbacks = []
    self.subscriptions = []
    self.destroyed = []
    self.offers = []

  async def create_session(self):
    await asyncio.sleep(self.create_delay)
    if self.fail_create:
      raise JanusError("create failed")
    return 1234

  async def start_echo(self, session_id, offer):
    if self.fail_echo:
      raise JanusError("attach failed")
    self.offers.append((session_id, offer))
    return 42

  async def destroy_session(self, session_id):
    self.destroyed.append(session_id)

  async def _deliver(self, callback):
    for event in self.extra_events:
      callback(event)
    if self.answer is not None:
      await asyncio.sleep(self.answer_delay)
      callback({"janus": "event", "sender": 42, "jsep": {"type": "answer", "sdp": self.answer}})
    await asyncio.Event().wait()

  def subscribe(self, session_id, callback, on_error=None):
    self.callbacks.append(callback)
    task = asyncio.create_task(self._deliver(callback))
    self.subscriptions.append(task)
    return task


class TestDuration:

  def test_requested_duration_is_clamped(self):
    orchestrator = EchoOrchestrator(FakeJanusClient(), max_duration=180)
    assert orchestrator.clamp_duration(1000) == 180
    assert orchestrator.clamp_duration(180) == 180
    assert orchestrator.clamp_duration(10) == 10

  def test_missing_duration_uses_maximum(self):
    orchestrator = EchoOrchestrator(FakeJanusClient(), max_duration=180)
    assert orchestrator.clamp_duration(None) == 180

  @pytest.mark.parametrize("duration", [0, -5])
  def test_non_positive_duration_rejected(self, duration):
    orchestrator = EchoOrchestrator(FakeJanusClient(), max_duration=180)
    with pytest.raises(InvalidSignalError):
      orchestrator.clamp_duration(duration)

  @pytest.mark.asyncio
  async def test_duration_above_maximum_times_out_at_maximum(self):
    client = FakeJanusClient()
    orchestrator = EchoOrchestrator(client, max_duration=0.05)
    loop = asyncio.get_running_loop()

    started = loop.time()
    with pytest.raises(EchoTimeoutError):
      await orchestrator.run_echo_test("v=0 offer", 1000)

    assert loop.time() - started < 1.0
    assert client.destroyed == [1234]


class TestRunEchoTest:

  @pytest.mark.asyncio
  @pytest.mark.parametrize("offer", ["", "   ", None])
  async def test_empty_offer_rejected(self, offer):
    client = FakeJanusClient(answer="v=0 answer")
    orchestrator = EchoOrchestrator(client, max_duration=1)

    with pytest.raises(InvalidSignalError):
      await orchestrator.run_echo_test(offer, 1)

    assert client.subscriptions == []

  @pytest.mark.asyncio
  async def test_returns_answer_without_teardown(self):
    client = FakeJanusClient(answer="v=0 answer", answer_delay=0.01)
    orchestrator = EchoOrchestrator(client, max_duration=5)

    answer = await orchestrator.run_echo_test("v=0 offer", 5)

    assert answer == "v=0 answer"
    assert client.offers == [(1234, "v=0 offer")]
    assert client.destroyed == []
    # The session stays polled until the deadline
    assert not client.subscriptions[0].done()
    await orchestrator.aclose()
    await asyncio.sleep(0.01)
    assert client.subscriptions[0].cancelled()

  @pytest.mark.asyncio
  async def test_non_answer_events_ignored(self):
    client = FakeJanusClient(
      answer="v=0 answer",
      extra_events=[
        {"janus": "event", "plugindata": {"data": {"result": "ok"}}},
        {"janus": "event", "jsep": {"type": "offer", "sdp": "v=0 renegotiate"}},
      ]
    )
    orchestrator = EchoOrchestrator(client, max_duration=5)

    assert await orchestrator.run_echo_test("v=0 offer", 5) == "v=0 answer"
    await orchestrator.aclose()

  @pytest.mark.asyncio
  async def test_second_answer_is_ignored(self):
    client = FakeJanusClient(answer="v=0 first")
    orchestrator = EchoOrchestrator(client, max_duration=5)

    assert await orchestrator.run_echo_test("v=0 offer", 5) == "v=0 first"
    client.callbacks[0]({"janus": "event", "jsep": {"type": "answer", "sdp": "v=0 second"}})
    await orchestrator.aclose()

  @pytest.mark.asyncio
  async def test_subscription_released_at_deadline(self):
    client = FakeJanusClient(answer="v=0 answer")
    orchestrator = EchoOrchestrator(client, max_duration=0.05)

    await orchestrator.run_echo_test("v=0 offer")
    await asyncio.sleep(0.1)

    assert client.subscriptions[0].cancelled()
    assert client.destroyed == []

  @pytest.mark.asyncio
  async def test_session_creation_failure(self):
    client = FakeJanusClient(fail_create=True)
    orchestrator = EchoOrchestrator(client, max_duration=1)

    with pytest.raises(EchoSessionError) as exc_info:
      await orchestrator.run_echo_test("v=0 offer", 1)

    assert exc_info.value.reason == SESSION_FAILED_REASON
    assert not isinstance(exc_info.value, EchoTimeoutError)
    assert client.destroyed == []
    assert client.subscriptions == []

  @pytest.mark.asyncio
  async def test_plugin_failure_destroys_session(self):
    client = FakeJanusClient(fail_echo=True)
    orchestrator = EchoOrchestrator(client, max_duration=1)

    with pytest.raises(EchoSessionError) as exc_info:
      await orchestrator.run_echo_test("v=0 offer", 1)

    assert exc_info.value.reason == PLUGIN_FAILED_REASON
    assert client.destroyed == [1234]
    await asyncio.sleep(0.01)
    assert client.subscriptions[0].cancelled()

  @pytest.mark.asyncio
  async def test_timeout_destroys_session_once(self):
    client = FakeJanusClient()
    orchestrator = EchoOrchestrator(client, max_duration=5)

    with pytest.raises(EchoTimeoutError) as exc_info:
      await orchestrator.run_echo_test("v=0 offer", 0.05)

    assert exc_info.value.reason == TIMEOUT_REASON
    assert client.destroyed == [1234]

    # A late answer after teardown changes nothing
    client.callbacks[0]({"janus": "event", "jsep": {"type": "answer", "sdp": "v=0 late"}})
    await asyncio.sleep(0.01)
    assert client.destroyed == [1234]
    assert client.subscriptions[0].cancelled()

  @pytest.mark.asyncio
  async def test_answer_after_deadline_is_a_timeout(self):
    client = FakeJanusClient(answer="v=0 slow", answer_delay=0.2)
    orchestrator = EchoOrchestrator(client, max_duration=5)

    with pytest.raises(EchoTimeoutError):
      await orchestrator.run_echo_test("v=0 offer", 0.05)

    assert client.destroyed == [1234]

  @pytest.mark.asyncio
  async def test_concurrent_requests_are_independent(self):
    client = FakeJanusClient(answer="v=0 answer", answer_delay=0.01)
    orchestrator = EchoOrchestrator(client, max_duration=5)

    answers = await asyncio.gather(*[orchestrator.run_echo_test(f"v=0 offer {i}", 5) for i in range(5)])

    assert answers == ["v=0 answer"] * 5
    assert len(client.subscriptions) == 5
    assert client.destroyed == []
    await orchestrator.aclose()

  @pytest.mark.asyncio
  async def test_cancelled_caller_destroys_session(self):
    client = FakeJanusClient()
    orchestrator = EchoOrchestrator(client, max_duration=5)

    task = asyncio.create_task(orchestrator.run_echo_test("v=0 offer", 5))
    await asyncio.sleep(0.02)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
      await task

    assert client.destroyed == [1234]

  @pytest.mark.asyncio
  async def test_malformed_jsep_is_ignored(self):
    client = FakeJanusClient(
      answer="v=0 answer",
      extra_events=[{"janus": "event", "jsep": "v=0 not a description"}, {"janus": "event", "jsep": None}]
    )
    orchestrator = EchoOrchestrator(client, max_duration=5)

    assert await orchestrator.run_echo_test("v=0 offer", 5) == "v=0 answer"
    await orchestrator.aclose()

  @pytest.mark.asyncio
  async def test_slow_session_creation_is_destroyed_when_it_completes(self):
    client = FakeJanusClient(create_delay=0.1)
    orchestrator = EchoOrchestrator(client, max_duration=5)

    with pytest.raises(EchoTimeoutError):
      await orchestrator.run_echo_test("v=0 offer", 0.02)

    assert client.destroyed == []
    await asyncio.sleep(0.15)
    assert client.destroyed == [1234]
    assert client.subscriptions == []


class TestJanusEventStream:

  @staticmethod
  def janus_handler(requests):
    def handler(request: httpx.Request):
      if request.method == "GET":
        return httpx.Response(500)
      body = json.loads(request.content)
      requests.append(body["janus"])
      if body["janus"] in ("create", "attach"):
        return httpx.Response(200, json={"janus": "success", "data": {"id": 7 if body["janus"] == "create" else 9}})
      if body["janus"] == "message":
        return httpx.Response(200, json={"janus": "ack"})
      return httpx.Response(200, json={"janus": "success"})
    return handler

  @pytest.mark.asyncio
  async def test_lost_event_stream_fails_without_waiting_for_deadline(self):
    requests = []
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(self.janus_handler(requests)))
    orchestrator = EchoOrchestrator(JanusRestClient("http://janus.test/janus", http_client=http_client), max_duration=5)
    loop = asyncio.get_running_loop()

    started = loop.time()
    with pytest.raises(EchoSessionError) as exc_info:
      await orchestrator.run_echo_test("v=0 offer", 5)

    assert not isinstance(exc_info.value, EchoTimeoutError)
    assert exc_info.value.reason == EVENTS_FAILED_REASON
    assert loop.time() - started < 1.0
    assert requests.count("destroy") == 1
    await http_client.aclose()
