"""Provider backends keyed by provider id."""

from .base import ImageBackend, ProviderBackend, RawCompletion
from .chat import ChatProviderBackend, create_chat_backends
from .image import FalImageBackend

__all__ = [
    "ChatProviderBackend",
    "FalImageBackend",
    "ImageBackend",
    "ProviderBackend",
    "RawCompletion",
    "create_chat_backends",
]
