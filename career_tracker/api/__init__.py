"""HTTP application and service wiring."""
