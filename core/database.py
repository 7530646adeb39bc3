from motor.motor_asyncio import AsyncIOMotorClient
from .settings import settings
from .signal_store import SignalStore

# Create the MongoDB client
client = AsyncIOMotorClient(settings.DATABASE_CONNECTION_URL)

# Get the database
db = client[settings.DATABASE_NAME]

signal_store = SignalStore(db, settings.SIGNAL_COLLECTION, settings.SIGNAL_STORE_TRANSACTIONS)

def get_signal_store():
  return signal_store
