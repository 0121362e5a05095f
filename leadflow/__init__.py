"""Leadflow - multi-step signup intake with verification and async provisioning."""
