"""
Application layer - generation services and the ports they depend on.
"""
