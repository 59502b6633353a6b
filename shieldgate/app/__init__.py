"""ShieldGate application package."""
