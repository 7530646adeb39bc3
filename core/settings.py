from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
  DATABASE_CONNECTION_URL: str
  DATABASE_NAME: str = "signalrtc-db"
  SIGNAL_COLLECTION: str = "webrtc_signals"
  # Transactions need a replica set, turn off for a standalone mongod
  SIGNAL_STORE_TRANSACTIONS: bool = True
  JANUS_URL: str
  JANUS_MAX_ECHO_DURATION: int = 180
  JANUS_LONG_POLL_TIMEOUT: float = 35.0
  CORS_ORIGINS: List[str] = ["http://localhost:5173"]
  LOG_LEVEL: str = "INFO"
  HOST: str = "0.0.0.0"
  PORT: int = 8000

  class Config:
    env_file = ".env"

settings = Settings()
