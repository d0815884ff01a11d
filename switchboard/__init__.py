"""
Switchboard — Session-Aware Turn Orchestration for Multi-Channel Agents.

Every chat platform adapter (Telegram, WhatsApp, Discord, Slack, Signal,
iMessage, Teams) hands Switchboard an opaque session key and a prompt.
Switchboard decides which agent owns the conversation, how much history the
model gets to see, repairs provider-specific turn-ordering quirks, and runs
exactly one turn against a pluggable model backend, while keeping a durable,
strictly ordered JSONL transcript of everything that happened.

Layers (bottom to top):
    1. Configuration (deployment TOML + SWITCHBOARD_* settings)
    2. Sessions (key routing, history windows, transcripts)
    3. Quirk correction and sandbox prompt projection
    4. Model backends and the tool-use loop
    5. The turn orchestrator (runner)
"""

__version__ = "0.1.0"
