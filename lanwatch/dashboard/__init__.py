"""
LanWatch Dashboard Package

FastAPI HTTP and WebSocket surface for the discovery engine.
"""

from .app import create_app

__all__ = ["create_app"]
