"""Pub/sub channel capability and the update-trigger wire codec."""

from crypto_pulse.channel.base import MessageHandler, PubSubChannel, create_channel
from crypto_pulse.channel.memory import InMemoryBroker, InMemoryChannel
from crypto_pulse.channel.trigger import (
    UPDATE_KIND,
    decode_trigger,
    encode_trigger,
    make_trigger,
)

__all__ = [
    "MessageHandler",
    "PubSubChannel",
    "create_channel",
    "InMemoryBroker",
    "InMemoryChannel",
    "UPDATE_KIND",
    "decode_trigger",
    "encode_trigger",
    "make_trigger",
]
