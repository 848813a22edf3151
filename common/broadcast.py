"""
Real-time broadcast hook.

Workflows publish events through ``broadcast()``; the actual transport
(websocket server, pusher, ...) subscribes to the ``event_broadcast`` signal.
"""

import logging

from django.dispatch import Signal

logger = logging.getLogger(__name__)

# Receivers get: channels (list[str]), event (str), payload (dict)
event_broadcast = Signal()


def broadcast(channels, event, payload):
    """Publish ``payload`` as ``event`` on every channel in ``channels``."""
    logger.debug(f"Broadcasting {event} on {', '.join(channels)}")
    return event_broadcast.send(
        sender=None,
        channels=list(channels),
        event=event,
        payload=payload
    )
