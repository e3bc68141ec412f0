"""
Core audio primitives.
"""

from hey_llama.core.audio import LOCAL_MIC, AudioBuffer, AudioFrame, AudioSource

__all__ = ["AudioBuffer", "AudioFrame", "AudioSource", "LOCAL_MIC"]
