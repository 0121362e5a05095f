"""Core configuration, errors, security and shared infrastructure."""
