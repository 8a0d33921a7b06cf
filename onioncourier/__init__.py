# Onion Courier

from onioncourier.client import CourierClient
from onioncourier.server.core import CourierServer

__all__ = [
    "CourierClient",
    "CourierServer",
]
