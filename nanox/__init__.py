"""
nano-x — a lightweight autonomous tool-calling agent runtime.

The package drives a bounded conversation with a language-model backend,
dispatches the tools the model asks for, rebuilds its operating context from
an on-disk workspace on every turn, and keeps the conversation from growing
without bound.

Layers (bottom to top):
    1. Truncation guard (head+tail content budgeting)
    2. Tools (schema derivation, registry, built-in capabilities)
    3. Workspace (bootstrap documents, memory, skills)
    4. Context assembly (system prompt pipeline)
    5. Conversation loop (request / dispatch / self-heal state machine)
    6. Session + CLI
"""

__version__ = "0.1.0"
