from schemas.signals.signal_schema import SignalKind, SessionDescription, IceCandidate
from services.signal_relay_service import SignalRelayService
from helpers.utils.errors import InvalidSignalError
from core.signal_store import SignalStore
from core.database import get_signal_store
from fastapi import APIRouter, Body, Depends, HTTPException, Response
from fastapi.responses import JSONResponse
from typing import Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

def get_signal_relay_service(store: SignalStore = Depends(get_signal_store)):
  return SignalRelayService(store)

@router.get("/callers/{to}")
async def get_callers(to: str, service: SignalRelayService = Depends(get_signal_relay_service)):
  try:
    return await service.get_callers(to)
  except InvalidSignalError as e:
    return JSONResponse(status_code=400, content={"error": str(e)})
  except Exception as e:
    logger.exception(f"Error listing callers for {to}: {e}")
    raise HTTPException(
      status_code=500,
      detail="Internal Server Error",
    ) from e

@router.get("/{to}/{from_}")
@router.get("/{to}/{from_}/{kind}")
async def get_signal_for_caller(
  to: str,
  from_: str,
  kind: SignalKind = SignalKind.any,
  service: SignalRelayService = Depends(get_signal_relay_service)
):
  try:
    signal = await service.claim_next_signal(to, from_, kind)
  except InvalidSignalError as e:
    return JSONResponse(status_code=400, content={"error": str(e)})
  except Exception as e:
    logger.exception(f"Error claiming signal for {to} from {from_}: {e}")
    raise HTTPException(
      status_code=500,
      detail="Internal Server Error",
    ) from e

  # Nothing pending is a normal outcome for a polling peer
  if signal is None:
    return Response(status_code=204)

  return Response(content=signal, media_type="application/json")

@router.put("/sdp/{from_}/{to}")
async def put_sdp(
  from_: str,
  to: str,
  sdp: Optional[SessionDescription] = Body(None),
  service: SignalRelayService = Depends(get_signal_relay_service)
):
  try:
    await service.put_sdp(from_, to, sdp)
  except InvalidSignalError as e:
    logger.warning(f"WebRTC signal PUT sdp request had invalid parameters: {e}")
    return JSONResponse(status_code=400, content={"error": str(e)})
  except Exception as e:
    logger.exception(f"Error storing SDP from {from_} to {to}: {e}")
    raise HTTPException(
      status_code=500,
      detail="Internal Server Error",
    ) from e

  return Response(status_code=200)

@router.put("/ice/{from_}/{to}")
async def put_ice(
  from_: str,
  to: str,
  ice: Optional[IceCandidate] = Body(None),
  service: SignalRelayService = Depends(get_signal_relay_service)
):
  try:
    await service.put_ice(from_, to, ice)
  except InvalidSignalError as e:
    logger.warning(f"WebRTC signal PUT ice candidate request had invalid parameters: {e}")
    return JSONResponse(status_code=400, content={"error": str(e)})
  except Exception as e:
    logger.exception(f"Error storing ICE candidate from {from_} to {to}: {e}")
    raise HTTPException(
      status_code=500,
      detail="Internal Server Error",
    ) from e

  return Response(status_code=200)
