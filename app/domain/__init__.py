"""
Domain layer containing the RTMS protocol engine.

Submodules:
- rtms: Signaling and media channels, sessions and the session coordinator.
"""
