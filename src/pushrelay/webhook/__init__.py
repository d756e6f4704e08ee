"""GitHub push webhook listener that runs one full update at a time.

- **WebhookServer**: aiohttp server answering signed push deliveries
- **JobCoalescer**: collapses overlapping triggers into a single rerun
- **PeriodicTrigger**: fixed-interval re-sync through the same coalescer
- **Security**: HMAC-SHA1 ``X-Hub-Signature`` verification in constant time

Example usage:
    >>> from pushrelay.webhook import webhook_server
    >>> server = webhook_server(settings, run_full_update)
    >>> await server.start()
    >>> await server.wait_closed()
"""

from .coalescer import JobCoalescer, JobState
from .security import (
    check_signature,
    expected_signature,
    string_equals_constant_time,
    verify_signature,
)
from .server import ACKNOWLEDGEMENT, ListenerState, WebhookServer
from .service import FullUpdateJob, webhook_server
from .trigger import PeriodicTrigger

__all__ = [
    # Coalescing
    "JobCoalescer",
    "JobState",
    # Security
    "check_signature",
    "expected_signature",
    "string_equals_constant_time",
    "verify_signature",
    # Server
    "ACKNOWLEDGEMENT",
    "ListenerState",
    "WebhookServer",
    # Wiring
    "FullUpdateJob",
    "PeriodicTrigger",
    "webhook_server",
]
