"""Cluster channel and message codec."""

from deploy_core.messaging.channel import ClusterChannel, Delivery, LoopbackChannel, LoopbackGroup
from deploy_core.messaging.codec import decode_message, encode_message, encode_text_line

__all__ = [
    "ClusterChannel",
    "Delivery",
    "LoopbackChannel",
    "LoopbackGroup",
    "decode_message",
    "encode_message",
    "encode_text_line",
]
