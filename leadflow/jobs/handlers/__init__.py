"""Job handlers by concern."""
