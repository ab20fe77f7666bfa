"""MultiSender — batch transfer authorization, fee tiering and VIP engine."""

from multisender.config import MultiSenderConfig
from multisender.service import MultiSenderService, MultiSenderState

__all__ = [
    "MultiSenderConfig",
    "MultiSenderService",
    "MultiSenderState",
]
