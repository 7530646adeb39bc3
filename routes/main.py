from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
from core.settings import settings
from core.database import client, signal_store
from core.janus import janus_client, echo_orchestrator
from .signals.signal_route import router as signal_router
from .janus.janus_route import router as janus_router

logger = logging.getLogger(__name__)

app = FastAPI()

app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.CORS_ORIGINS,
  allow_credentials=True,
  allow_methods=["*"],  # Allow all HTTP methods
  allow_headers=["*"],  # Allow all headers
)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
  # Malformed bodies and bad path values are client errors, reported as 400 not 422
  logger.warning(f"Invalid request to {request.url.path}: {exc.errors()}")
  return JSONResponse(status_code=400, content={"error": "Invalid request", "detail": jsonable_errors(exc)})

def jsonable_errors(exc: RequestValidationError):
  return [{"loc": list(error.get("loc", [])), "msg": error.get("msg")} for error in exc.errors()]

@app.on_event("startup")
async def startup_event():
  await signal_store.ensure_indexes()

@app.on_event("shutdown")
async def shutdown_event():
  await echo_orchestrator.aclose()
  await janus_client.aclose()
  client.close()

@app.get('/')
async def get_homepage():
  return "signalrtc"

app.include_router(janus_router, prefix="/api/webrtcsignal", tags=["janus"])
app.include_router(signal_router, prefix="/api/webrtcsignal", tags=["webrtc-signals"])
