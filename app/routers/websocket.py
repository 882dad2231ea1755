import json
import logging

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect

from app.realtime.gateway import RealtimeGateway

router = APIRouter()
logger = logging.getLogger(__name__)


def get_gateway(request: Request) -> RealtimeGateway:
    return request.app.state.gateway


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    gateway: RealtimeGateway = websocket.app.state.gateway
    await websocket.accept()
    connection_id = await gateway.connect(websocket)
    try:
        while True:
            text = await websocket.receive_text()
            try:
                frame = json.loads(text)
            except ValueError:
                await gateway.send_error(connection_id, "Invalid JSON")
                continue
            await gateway.handle_client_message(connection_id, frame)
    except WebSocketDisconnect:
        logger.debug("WebSocket closed by client", extra={"connection_id": connection_id})
    finally:
        gateway.disconnect(connection_id)


@router.get("/api/ws/stats", tags=["websocket"])
async def websocket_stats(gateway: RealtimeGateway = Depends(get_gateway)) -> dict:
    return gateway.stats()
