"""Bot layer — update loop, classification, handler chain and the Bot facade.

This package may import from ``core/`` and ``sdk/`` only.
"""

from bot.bot import Bot, BotOptions
from bot.classifier import IncomingUpdate, UnknownUpdateError, UpdateKind, classify
from bot.dispatcher import Continuation, Dispatcher, filter_handler
from bot.events import Emitter
from bot.update_loop import LoopPhase, LoopState, UpdateLoop, UpdateLoopOptions

__all__ = [
    # Facade
    "Bot",
    "BotOptions",
    # Polling
    "UpdateLoop",
    "UpdateLoopOptions",
    "LoopPhase",
    "LoopState",
    # Classification
    "IncomingUpdate",
    "UpdateKind",
    "UnknownUpdateError",
    "classify",
    # Handler chain
    "Dispatcher",
    "Continuation",
    "filter_handler",
    # Notifications
    "Emitter",
]
