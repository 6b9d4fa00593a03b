"""Pydantic configuration models passed explicitly to servers and clients."""
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_HOST: str = "127.0.0.1"
DEFAULT_PORT: int = 8080


class Transport(str, Enum):
    """Transport used by a conversation."""

    TCP = "TCP"
    UDP = "UDP"


class DeliveryConfig(BaseModel):
    """
    Retry policy of the connectionless client.

    One logical request is sent at most ``retry_limit`` times, and each
    attempt waits up to ``timeout_sec`` for a reply, checking the socket
    every ``poll_interval`` seconds.
    """

    model_config = ConfigDict(frozen=True)

    retry_limit: int = Field(default=3, ge=1, description="Maximum send attempts per request")
    timeout_sec: float = Field(default=3.0, gt=0, description="Seconds to wait for a reply per attempt")
    poll_interval: float = Field(default=0.01, gt=0, description="Seconds between two empty polls")
