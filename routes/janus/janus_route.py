from services.echo_orchestrator import EchoOrchestrator
from helpers.utils.errors import InvalidSignalError, EchoSessionError, EchoTimeoutError
from core.janus import get_echo_orchestrator
from fastapi import APIRouter, Body, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, PlainTextResponse
from typing import Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

@router.post("/janus")
async def janus_echo(
  sdp: Optional[str] = Body(None, description="SDP offer from the peer connecting to the Janus Echo Test plugin"),
  duration: Optional[int] = Query(None, description="Maximum echo test duration in seconds, capped by the server"),
  orchestrator: EchoOrchestrator = Depends(get_echo_orchestrator)
):
  """
  Sets up a WebRTC echo test with the Janus server and returns its SDP answer.

  curl -X POST http://localhost:8000/api/webrtcsignal/janus?duration=10 -H "Content-Type: application/json" -d '"v=0..."'
  """
  try:
    answer = await orchestrator.run_echo_test(sdp, duration)
  except InvalidSignalError as e:
    logger.warning(f"WebRTC signal janus request was invalid: {e}")
    return JSONResponse(status_code=400, content={"error": str(e)})
  except EchoTimeoutError as e:
    return JSONResponse(status_code=504, content={"error": e.reason})
  except EchoSessionError as e:
    return JSONResponse(status_code=502, content={"error": e.reason})
  except Exception as e:
    logger.exception(f"Error running Janus echo test: {e}")
    raise HTTPException(
      status_code=500,
      detail="Internal Server Error",
    ) from e

  return PlainTextResponse(answer)
