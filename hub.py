import asyncio
import json
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from fastapi import WebSocket

from logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class Outbound:
    """One server -> client message and the connection ids it goes to."""

    recipients: Tuple[str, ...]
    payload: dict


class ConnectionHub:
    """Maps connection ids to their live WebSockets and delivers outbound messages."""

    def __init__(self):
        # Format: {connection_id: websocket}
        self.sockets: Dict[str, WebSocket] = {}
        self._pending: Set[asyncio.Task] = set()

    def attach(self, connection_id: str, websocket: WebSocket):
        self.sockets[connection_id] = websocket
        logger.debug(f"Attached socket for {connection_id} ({len(self.sockets)} live)")

    def detach(self, connection_id: str) -> Optional[WebSocket]:
        websocket = self.sockets.pop(connection_id, None)
        if websocket is not None:
            logger.debug(f"Detached socket for {connection_id} ({len(self.sockets)} live)")
        return websocket

    async def deliver(self, outbound: Iterable[Outbound]):
        """Send each message in order; recipients of a single message are written concurrently."""
        for item in outbound:
            text = json.dumps(item.payload)
            send_tasks = []
            targets = []
            for connection_id in item.recipients:
                websocket = self.sockets.get(connection_id)
                if websocket is None:
                    logger.debug(f"No live socket for {connection_id}, skipping {item.payload.get('type')}")
                    continue
                send_tasks.append(websocket.send_text(text))
                targets.append(connection_id)

            if not send_tasks:
                continue
            results = await asyncio.gather(*send_tasks, return_exceptions=True)
            for connection_id, result in zip(targets, results):
                if isinstance(result, Exception):
                    # the socket's own receive loop performs the cleanup
                    logger.warning(f"Error sending {item.payload.get('type')} to connection {connection_id}: {result}")
            logger.debug(f"Delivered {item.payload.get('type')} to {len(send_tasks)} connections")

    def deliver_soon(self, outbound: List[Outbound]) -> Optional[asyncio.Task]:
        """Deliver from a task of its own, so it survives cancellation of the caller.

        Used when a closing socket's handler notifies the rest of its room.
        """
        if not outbound:
            return None
        task = asyncio.get_running_loop().create_task(self.deliver(outbound))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task
