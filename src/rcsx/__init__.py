"""rcsx - RCS business messaging emulator core."""

from rcsx.messages import MessagePipeline
from rcsx.rbm import CallbackService, ConversationTracker, RbmRuntime

__version__ = "0.1.0"

__all__ = ["CallbackService", "ConversationTracker", "MessagePipeline", "RbmRuntime"]
