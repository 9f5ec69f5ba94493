from typing import Any

from errors import NotFound
from hub import Outbound
from logging_config import get_logger

logger = get_logger(__name__)


class SignalingRelay:
    """Forwards WebRTC negotiation payloads (offer/answer/candidate) between two connections.

    The payload is never inspected; peer-connection semantics belong to the clients.
    """

    def __init__(self, registry):
        self.registry = registry

    def relay(self, from_id: str, to_id: str, kind: str, payload: Any) -> Outbound:
        target = self.registry.lookup_connected(to_id)
        if target is None:
            logger.info(f"Relay of {kind} from {from_id} dropped: target {to_id} not connected")
            raise NotFound(f"Connection '{to_id}' not found")
        logger.debug(f"Relaying {kind} from {from_id} to {to_id}")
        return Outbound((to_id,), {"type": kind, "fromId": from_id, "payload": payload})
