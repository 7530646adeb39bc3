from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime, timezone
from enum import Enum
from bson import ObjectId

class SignalKind(str, Enum):
  any = "any"  # query filter only, never stored
  sdp = "sdp"  # offer or answer
  ice = "ice"  # connectivity candidate

class SessionDescription(BaseModel):
  type: Optional[str] = None  # 'offer', 'answer', 'pranswer' or 'rollback'
  sdp: Optional[str] = None

  @property
  def is_offer(self) -> bool:
    return self.type == "offer"

class IceCandidate(BaseModel):
  candidate: Optional[str] = None
  sdpMid: Optional[str] = None
  sdpMLineIndex: Optional[int] = None
  usernameFragment: Optional[str] = None

class PendingSignal(BaseModel):
  id: ObjectId = Field(default_factory=ObjectId, alias="_id")
  to: str
  from_: str = Field(alias="from")
  signal_type: SignalKind
  signal: str  # JSON encoded handshake payload
  inserted: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
  delivered_at: Optional[datetime] = None

  class Config:
    arbitrary_types_allowed = True
    populate_by_name = True

  def to_document(self) -> dict:
    """Build the MongoDB document, lower-cased keys are what every query matches on."""
    return {
      "_id": self.id,
      "to": self.to,
      "from": self.from_,
      "to_key": self.to.lower(),
      "from_key": self.from_.lower(),
      "signal_type": self.signal_type.value,
      "signal": self.signal,
      "inserted": self.inserted,
      "delivered_at": self.delivered_at,
    }
