from schemas.signals.signal_schema import PendingSignal, SignalKind, SessionDescription, IceCandidate
from core.signal_store import SignalStore
from helpers.utils.errors import InvalidSignalError
from typing import List, Optional
import logging

logger = logging.getLogger(__name__)

def require_identities(*identities: Optional[str]):
  if any(identity is None or not identity.strip() for identity in identities):
    raise InvalidSignalError("Both the to and from identities must be supplied")

class SignalRelayService:
  """
  Put, claim and invalidate WebRTC signals exchanged between two peers.

  A new SDP offer resets the handshake: every undelivered signal between the
  pair, in either direction, is removed before the offer is stored.
  """

  def __init__(self, store: SignalStore):
    self.store = store

  async def put_sdp(self, from_: str, to: str, description: Optional[SessionDescription]):
    require_identities(from_, to)
    if description is None or not description.sdp:
      raise InvalidSignalError("SDP payload is missing")

    signal = PendingSignal(
      to=to,
      from_=from_,
      signal_type=SignalKind.sdp,
      signal=description.model_dump_json(exclude_none=True)
    )

    if description.is_offer:
      await self.store.insert_offer(signal)
    else:
      await self.store.insert(signal)

    logger.debug(f"Stored SDP {description.type} from {from_} to {to}.")

  async def put_ice(self, from_: str, to: str, candidate: Optional[IceCandidate]):
    require_identities(from_, to)
    if candidate is None or candidate.candidate is None:
      raise InvalidSignalError("ICE candidate payload is missing")

    await self.store.insert(PendingSignal(
      to=to,
      from_=from_,
      signal_type=SignalKind.ice,
      signal=candidate.model_dump_json(exclude_none=True)
    ))

  async def claim_next_signal(self, to: str, from_: str, kind: SignalKind = SignalKind.any) -> Optional[str]:
    """Returns the oldest pending payload for (to, from), or None when nothing is waiting."""
    require_identities(to, from_)

    doc = await self.store.claim_next(to, from_, kind)
    if doc is None:
      return None

    logger.debug(f"Delivered {doc['signal_type']} signal {doc['_id']} from {from_} to {to}.")
    return doc["signal"]

  async def invalidate_pair(self, a: str, b: str) -> int:
    require_identities(a, b)
    return await self.store.delete_pair(a, b)

  async def get_callers(self, to: str) -> List[str]:
    require_identities(to)
    return await self.store.pending_callers(to)
