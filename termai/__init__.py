"""Terminal AI assistant core: provider client, secret redaction, command validation."""

__version__ = "0.1.0"
