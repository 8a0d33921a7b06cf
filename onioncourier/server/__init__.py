"""
Entry point for the onion courier server.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .core import CourierServer

if TYPE_CHECKING:
    from onioncourier.common.models import ServiceConfig


def start_server(service_config: ServiceConfig, log_level: int | None = None) -> None:
    """Start the rotating onion service and block until shutdown."""
    server = CourierServer(service_config, log_level=log_level)
    server.run()
