"""Model backend access."""
from nanox.api.engine import BackendError, ContextOverflowError, ModelBackend, ModelEngine

__all__ = ["ModelEngine", "ModelBackend", "BackendError", "ContextOverflowError"]
