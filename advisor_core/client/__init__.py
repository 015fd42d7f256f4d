from .chat_client import CallResponseSpec, ChatClient, ChatClientBuilder, PromptSpec, StreamResponseSpec
from .terminal import ToolCallingTerminal

__all__ = [
    "CallResponseSpec",
    "ChatClient",
    "ChatClientBuilder",
    "PromptSpec",
    "StreamResponseSpec",
    "ToolCallingTerminal",
]
