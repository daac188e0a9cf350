import asyncio
import json
import logging
from typing import Dict, Set, List, Optional, Any
from datetime import datetime
from dataclasses import dataclass, asdict
from enum import Enum
import uuid
from fastapi import WebSocket

from anajak_erp.schemas.sync import SyncPageResult

logger = logging.getLogger(__name__)

SYNC_CHANNEL_PREFIX = "sync:"

class WebSocketMessageType(str, Enum):
    """Типы WebSocket сообщений"""
    SYNC_PROGRESS = "sync_progress"
    SYNC_COMPLETED = "sync_completed"
    SYNC_ERROR = "sync_error"
    SYSTEM_NOTIFICATION = "system_notification"
    PING = "ping"
    PONG = "pong"

@dataclass
class WebSocketMessage:
    """Структура WebSocket сообщения"""
    type: WebSocketMessageType
    data: Dict[str, Any]
    timestamp: str = ""
    message_id: Optional[str] = None

    def __post_init__(self):
        if self.message_id is None:
            self.message_id = str(uuid.uuid4())
        if not self.timestamp:
            self.timestamp = datetime.now().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

def sync_channel(run_id: str) -> str:
    """Канал прогресса конкретного прогона синхронизации"""
    return f"{SYNC_CHANNEL_PREFIX}{run_id}"

class ConnectionManager:
    """Менеджер WebSocket соединений.

    Базовые каналы фиксированы; каналы прогонов синхронизации (sync:<run_id>)
    создаются при первой подписке и удаляются, когда в них не остаётся клиентов.
    """

    BASE_CHANNELS = ("sync_updates", "system_notifications", "all")

    def __init__(self):
        # Активные соединения по каналам
        self.active_connections: Dict[str, Set[WebSocket]] = {
            channel: set() for channel in self.BASE_CHANNELS
        }

        # Информация о подключениях
        self.connection_info: Dict[WebSocket, Dict[str, Any]] = {}

        # Статистика
        self.stats = {
            "total_connections": 0,
            "current_connections": 0,
            "messages_sent": 0,
            "messages_received": 0,
            "errors": 0
        }

        # Очередь сообщений для отложенной отправки
        self.message_queue: asyncio.Queue = asyncio.Queue()

        # Фоновая задача для обработки очереди
        self._queue_task: Optional[asyncio.Task] = None

    def _is_valid_channel(self, channel: str) -> bool:
        return channel in self.BASE_CHANNELS or (
            channel.startswith(SYNC_CHANNEL_PREFIX) and len(channel) > len(SYNC_CHANNEL_PREFIX)
        )

    async def start(self):
        """Запуск менеджера"""
        if self._queue_task is None:
            self._queue_task = asyncio.create_task(self._process_message_queue())
            logger.info("WebSocket manager started")

    async def stop(self):
        """Остановка менеджера"""
        if self._queue_task:
            self._queue_task.cancel()
            try:
                await self._queue_task
            except asyncio.CancelledError:
                pass
            self._queue_task = None
            logger.info("WebSocket manager stopped")

    async def _process_message_queue(self):
        """Обработка очереди сообщений"""
        while True:
            try:
                message, channel = await self.message_queue.get()
                await self._broadcast_internal(message, channel)
                self.message_queue.task_done()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error processing message queue: {e}")
                self.stats["errors"] += 1

    def subscribe(self, websocket: WebSocket, channels: List[str]) -> List[str]:
        """Добавить соединение в каналы; возвращает принятые каналы"""
        accepted = []
        for channel in channels:
            if not self._is_valid_channel(channel):
                logger.warning(f"Unknown channel: {channel}")
                continue
            self.active_connections.setdefault(channel, set()).add(websocket)
            accepted.append(channel)
        return accepted

    def unsubscribe(self, websocket: WebSocket, channels: List[str]):
        for channel in channels:
            connections = self.active_connections.get(channel)
            if connections is None:
                continue
            connections.discard(websocket)
            if not connections and channel not in self.BASE_CHANNELS:
                del self.active_connections[channel]

    async def connect(self, websocket: WebSocket, channels: List[str]):
        """Подключение клиента"""
        await websocket.accept()

        accepted = self.subscribe(websocket, channels)
        self.active_connections["all"].add(websocket)

        connection_id = str(uuid.uuid4())
        self.connection_info[websocket] = {
            "id": connection_id,
            "channels": accepted,
            "connected_at": datetime.now().isoformat(),
            "last_activity": datetime.now().isoformat()
        }

        self.stats["total_connections"] += 1
        self.stats["current_connections"] += 1

        logger.info(f"WebSocket connected: {connection_id} on channels: {accepted}")

        welcome_msg = WebSocketMessage(
            type=WebSocketMessageType.SYSTEM_NOTIFICATION,
            data={
                "message": "Connected to Anajak ERP WebSocket",
                "connection_id": connection_id,
                "channels": accepted
            }
        )
        await websocket.send_json(welcome_msg.to_dict())

    def disconnect(self, websocket: WebSocket):
        """Отключение клиента"""
        connection_info = self.connection_info.pop(websocket, None)

        if connection_info:
            self.unsubscribe(websocket, connection_info["channels"])
            self.active_connections["all"].discard(websocket)
            self.stats["current_connections"] -= 1
            logger.info(f"WebSocket disconnected: {connection_info['id']}")

    async def send_personal_message(self, message: WebSocketMessage, websocket: WebSocket):
        """Отправка личного сообщения"""
        try:
            await websocket.send_json(message.to_dict())
            self.stats["messages_sent"] += 1

            if websocket in self.connection_info:
                self.connection_info[websocket]["last_activity"] = datetime.now().isoformat()

        except Exception as e:
            logger.error(f"Error sending personal message: {e}")
            self.stats["errors"] += 1

    async def broadcast(self, message: WebSocketMessage, channel: str = "all"):
        """Асинхронная широковещательная рассылка"""
        await self.message_queue.put((message, channel))

    async def _broadcast_internal(self, message: WebSocketMessage, channel: str = "all"):
        """Внутренняя реализация широковещательной рассылки"""
        connections = self.active_connections.get(channel)
        if not connections:
            logger.debug(f"No subscribers on channel: {channel}")
            return

        disconnected = set()

        for connection in list(connections):
            try:
                await connection.send_json(message.to_dict())
                self.stats["messages_sent"] += 1

                if connection in self.connection_info:
                    self.connection_info[connection]["last_activity"] = datetime.now().isoformat()

            except Exception as e:
                logger.error(f"Error broadcasting to connection: {e}")
                disconnected.add(connection)
                self.stats["errors"] += 1

        # Удаляем отключенные соединения
        for connection in disconnected:
            self.disconnect(connection)

    async def get_connection_stats(self) -> Dict[str, Any]:
        """Получение статистики соединений"""
        active_by_channel = {
            channel: len(connections)
            for channel, connections in self.active_connections.items()
        }

        return {
            **self.stats,
            "active_by_channel": active_by_channel,
            "total_active_connections": len(self.active_connections["all"]),
            "timestamp": datetime.now().isoformat()
        }

# Глобальный экземпляр менеджера
manager = ConnectionManager()

async def publish_sync_page(run_id: str, result: SyncPageResult):
    """Опубликовать итог страницы в канал прогона"""
    message_type = (
        WebSocketMessageType.SYNC_PROGRESS if result.has_more
        else WebSocketMessageType.SYNC_COMPLETED
    )
    message = WebSocketMessage(
        type=message_type,
        data={"run_id": run_id, **result.model_dump(mode="json", by_alias=True)}
    )
    await manager.broadcast(message, sync_channel(run_id))

async def publish_sync_error(run_id: str, page: int, error: str):
    """Опубликовать ошибку загрузки страницы"""
    message = WebSocketMessage(
        type=WebSocketMessageType.SYNC_ERROR,
        data={"run_id": run_id, "page": page, "error": error}
    )
    await manager.broadcast(message, sync_channel(run_id))
