"""Services package for ShieldGate."""
