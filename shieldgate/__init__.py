"""ShieldGate: per-client rate limiting and suspicion-score admission control."""

__version__ = "0.1.0"
