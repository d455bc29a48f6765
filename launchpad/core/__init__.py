"""Configuration and profile loading shared across layers."""
