from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument
from datetime import datetime, timezone
from typing import List, Optional
from schemas.signals.signal_schema import PendingSignal, SignalKind
import logging

logger = logging.getLogger(__name__)

def pair_filter(a: str, b: str) -> dict:
  """Match undelivered signals exchanged between a and b in either direction."""
  a, b = a.lower(), b.lower()
  return {
    "delivered_at": None,
    "$or": [
      {"from_key": a, "to_key": b},
      {"from_key": b, "to_key": a},
    ]
  }

class SignalStore:
  def __init__(self, db: AsyncIOMotorDatabase, collection_name: str = "webrtc_signals", use_transactions: bool = True):
    self.db = db
    self.collection = db[collection_name]
    self.use_transactions = use_transactions

  async def ensure_indexes(self):
    await self.collection.create_index(
      [("to_key", ASCENDING), ("from_key", ASCENDING), ("delivered_at", ASCENDING), ("inserted", ASCENDING)],
      name="pending_signal_idx"
    )

  async def insert(self, signal: PendingSignal, session=None):
    await self.collection.insert_one(signal.to_document(), session=session)

  async def delete_pair(self, a: str, b: str, session=None) -> int:
    result = await self.collection.delete_many(pair_filter(a, b), session=session)
    return result.deleted_count

  async def insert_offer(self, signal: PendingSignal):
    """Remove every pending signal for the pair and insert the new offer as one unit."""
    async def invalidate_then_insert(session):
      deleted = await self.delete_pair(signal.from_, signal.to, session=session)
      await self.insert(signal, session=session)
      return deleted

    if not self.use_transactions:
      deleted = await invalidate_then_insert(None)
    else:
      async with await self.db.client.start_session() as session:
        # with_transaction retries on transient write conflicts with a racing offer
        deleted = await session.with_transaction(invalidate_then_insert)

    if deleted:
      logger.debug(f"Offer from {signal.from_} to {signal.to} expired {deleted} pending signal(s).")

  async def claim_next(self, to: str, from_: str, kind: SignalKind = SignalKind.any) -> Optional[dict]:
    query = {
      "to_key": to.lower(),
      "from_key": from_.lower(),
      "delivered_at": None
    }

    if kind != SignalKind.any:
      query["signal_type"] = kind.value

    # Select and mark in a single update so two pollers can never claim the same row
    return await self.collection.find_one_and_update(
      query,
      {"$set": {"delivered_at": datetime.now(timezone.utc)}},
      sort=[("inserted", ASCENDING), ("_id", ASCENDING)],
      return_document=ReturnDocument.AFTER
    )

  async def pending_callers(self, to: str) -> List[str]:
    cursor = self.collection.find(
      {"to_key": to.lower(), "delivered_at": None},
      {"from": 1, "from_key": 1}
    )
    callers = {}
    async for doc in cursor:
      callers.setdefault(doc["from_key"], doc["from"])
    return [callers[key] for key in sorted(callers)]
