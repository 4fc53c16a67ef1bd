"""Request-rate governor service package."""
