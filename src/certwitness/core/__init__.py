"""Core: domain models, contracts and services (no network code)."""
