import logging
from datetime import datetime
from fastapi import WebSocket, WebSocketDisconnect, APIRouter, Depends
from typing import Dict, List
from sqlalchemy.orm import Session
from utils.database import get_db
from models.location import Location

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])

class ConnectionManager:
    def __init__(self):
        self.active_connections: Dict[int, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, location_id: int):
        await websocket.accept()
        if location_id not in self.active_connections:
            self.active_connections[location_id] = []
        self.active_connections[location_id].append(websocket)
        logger.debug(f"WebSocket connected for location {location_id}. Total connections: {len(self.active_connections[location_id])}")

    def disconnect(self, websocket: WebSocket, location_id: int):
        if location_id in self.active_connections:
            if websocket in self.active_connections[location_id]:
                self.active_connections[location_id].remove(websocket)
            if not self.active_connections[location_id]:
                del self.active_connections[location_id]
            logger.debug(f"WebSocket disconnected for location {location_id}. Total connections: {len(self.active_connections.get(location_id, []))}")

    async def broadcast(self, message: dict, location_id: int):
        for connection in list(self.active_connections.get(location_id, [])):
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.warning(f"Failed to send WebSocket message to location {location_id}: {str(e)}")

connection_manager = ConnectionManager()

async def _notify(event: str, location_id: int, data: dict):
    if not location_id:
        logger.warning(f"No location_id provided for {event} notification")
        return

    message = {"event": event, "location_id": location_id, "timestamp": datetime.utcnow().isoformat(), **data}
    logger.debug(f"Sending {event} notification for location {location_id}: {message}")
    try:
        await connection_manager.broadcast(message, location_id)
    except Exception as e:
        logger.warning(f"Failed to broadcast {event} for location {location_id}: {str(e)}")

async def notify_order_event(event: str, order):
    """Order lifecycle events: created, updated, transferred, accepted, settled, completed, cancelled."""
    await _notify(f"order.{event}", order.location_id, {
        "order_id": order.id,
        "order_number": order.order_number,
        "status": order.status.value if hasattr(order.status, "value") else order.status,
        "table_ids": order.table_ids,
        "total_amount": order.total_amount,
    })

async def notify_table_event(event: str, location_id: int, table_ids: List[int], **extra):
    """Table events: reserved, released, expired, switched, merged, split."""
    await _notify(f"table.{event}", location_id, {"table_ids": list(table_ids), **extra})

@router.websocket("/ws/{location_id}")
async def websocket_notifications(websocket: WebSocket, location_id: int, db: Session = Depends(get_db)):
    location = db.query(Location).filter(Location.id == location_id).first()
    if not location:
        await websocket.close(code=4000, reason="Invalid location ID")
        return

    try:
        await connection_manager.connect(websocket, location_id)
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        connection_manager.disconnect(websocket, location_id)
    except Exception as e:
        logger.error(f"WebSocket error for location {location_id}: {str(e)}")
        connection_manager.disconnect(websocket, location_id)
        await websocket.close(code=4000, reason=str(e))
