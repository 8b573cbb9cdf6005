"""Health check module."""

from coursemarket.health.router import router


__all__ = ["router"]
