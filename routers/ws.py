import asyncio

from fastapi import APIRouter, WebSocket

from logging_config import get_logger

logger = get_logger(__name__)

ws_router = APIRouter(tags=["ws"])


def _schedule_reap(registry, connection_id: str, grace_seconds: float):
    if grace_seconds > 0:
        asyncio.get_running_loop().call_later(grace_seconds, registry.reap, connection_id)
        logger.debug(f"Connection {connection_id} will be reaped in {grace_seconds}s")
    else:
        registry.reap(connection_id)


@ws_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """One bingo client. Every JSON text frame is routed through the MessageRouter.

    Frames from this socket are handled strictly one at a time: the outbound
    messages of a frame are delivered before the next frame is read.
    """
    state = websocket.app.state
    message_router = state.message_router
    hub = state.hub

    await websocket.accept()
    connection_id, outbound = message_router.handle_connect()
    hub.attach(connection_id, websocket)

    try:
        await hub.deliver(outbound)

        message_count = 0
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"WebSocket disconnected normally for connection {connection_id}")
                break

            data = message.get("text")
            if data is None:
                data = message.get("bytes")
            if data is None:
                continue
            message_count += 1
            logger.debug(f"Received message #{message_count} from connection {connection_id}")

            await hub.deliver(message_router.handle_frame(connection_id, data))
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
    finally:
        hub.detach(connection_id)
        outbound = message_router.handle_disconnect(connection_id)
        _schedule_reap(state.registry, connection_id, state.settings.disconnect_grace_seconds)
        # this task may already be cancelled by the server tearing the socket down
        hub.deliver_soon(outbound)

        try:
            await websocket.close()
        except Exception as e:
            logger.debug(f"Error closing WebSocket: {e}")
