"""Deal Relay - CRM deal change filtering and chat webhook notifications."""

__version__ = "0.1.0"
