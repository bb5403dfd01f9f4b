"""
SPH module: gas and sink particle containers.
"""

from .particles import ParticleSystem, SinkSystem

__all__ = ["ParticleSystem", "SinkSystem"]
