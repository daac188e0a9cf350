from typing import List
import json
import logging
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query
from anajak_erp.services.websocket_manager import manager, WebSocketMessage, WebSocketMessageType
from datetime import datetime

router = APIRouter()
logger = logging.getLogger(__name__)

@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    channels: str = Query("sync_updates", description="Каналы для подписки")
):
    """
    WebSocket endpoint для real-time уведомлений.

    Поддерживаемые каналы:
    - sync:<run_id>: прогресс конкретного прогона синхронизации
    - sync_updates: общие события синхронизации
    - system_notifications: системные уведомления
    - all: все сообщения
    """

    channel_list = [ch.strip() for ch in channels.split(",") if ch.strip()]

    await manager.connect(websocket, channel_list)

    try:
        while True:
            data = await websocket.receive_text()
            manager.stats["messages_received"] += 1

            try:
                message_data = json.loads(data)
            except json.JSONDecodeError:
                error_msg = WebSocketMessage(
                    type=WebSocketMessageType.SYSTEM_NOTIFICATION,
                    data={"error": "Invalid JSON format"}
                )
                await manager.send_personal_message(error_msg, websocket)
                continue

            message_type = message_data.get("type")

            if message_type == WebSocketMessageType.PING.value:
                await manager.send_personal_message(
                    WebSocketMessage(type=WebSocketMessageType.PONG, data={}),
                    websocket
                )

            elif message_type == WebSocketMessageType.PONG.value:
                if websocket in manager.connection_info:
                    manager.connection_info[websocket]["last_activity"] = datetime.now().isoformat()

            elif message_type == "subscribe":
                await _handle_subscribe(websocket, message_data.get("channels", []))

            elif message_type == "unsubscribe":
                await _handle_unsubscribe(websocket, message_data.get("channels", []))

            elif message_type == "get_stats":
                stats = await manager.get_connection_stats()
                response = WebSocketMessage(
                    type=WebSocketMessageType.SYSTEM_NOTIFICATION,
                    data={"stats": stats}
                )
                await manager.send_personal_message(response, websocket)

    except WebSocketDisconnect:
        manager.disconnect(websocket)

    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        manager.disconnect(websocket)

async def _handle_subscribe(websocket: WebSocket, channels: List[str]):
    """Обработка подписки на каналы"""
    if websocket not in manager.connection_info:
        return

    connection_info = manager.connection_info[websocket]
    current_channels = set(connection_info["channels"])
    current_channels.update(manager.subscribe(websocket, channels))
    connection_info["channels"] = sorted(current_channels)

    response = WebSocketMessage(
        type=WebSocketMessageType.SYSTEM_NOTIFICATION,
        data={
            "message": f"Subscribed to channels: {channels}",
            "current_channels": connection_info["channels"]
        }
    )
    await manager.send_personal_message(response, websocket)

async def _handle_unsubscribe(websocket: WebSocket, channels: List[str]):
    """Обработка отписки от каналов"""
    if websocket not in manager.connection_info:
        return

    connection_info = manager.connection_info[websocket]
    manager.unsubscribe(websocket, channels)
    current_channels = set(connection_info["channels"]) - set(channels)
    connection_info["channels"] = sorted(current_channels)

    response = WebSocketMessage(
        type=WebSocketMessageType.SYSTEM_NOTIFICATION,
        data={
            "message": f"Unsubscribed from channels: {channels}",
            "current_channels": connection_info["channels"]
        }
    )
    await manager.send_personal_message(response, websocket)

@router.get("/ws/stats")
async def get_websocket_stats():
    """Статистика WebSocket соединений"""
    return await manager.get_connection_stats()
