"""IntentGuard: detects files shared in chat whose content contradicts the sender's stated intent."""

__version__ = "0.1.0"
