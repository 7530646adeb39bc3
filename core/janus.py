from helpers.utils.janus_rest_client import JanusRestClient
from services.echo_orchestrator import EchoOrchestrator
from .settings import settings

# Shared Janus client, sessions for concurrent echo tests are multiplexed over its connection pool
janus_client = JanusRestClient(settings.JANUS_URL, long_poll_timeout=settings.JANUS_LONG_POLL_TIMEOUT)

echo_orchestrator = EchoOrchestrator(janus_client, max_duration=settings.JANUS_MAX_ECHO_DURATION)

def get_echo_orchestrator():
  return echo_orchestrator
