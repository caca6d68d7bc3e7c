"""Agent harness — the runtime that turns a model backend into an agent."""
from nanox.harness.interaction_log import InteractionLog
from nanox.harness.loop import ConversationLoop, LoopResult
from nanox.harness.truncation import guard

__all__ = ["ConversationLoop", "LoopResult", "InteractionLog", "guard"]
