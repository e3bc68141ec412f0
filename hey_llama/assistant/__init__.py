"""
Voice assistant pipeline for hey-llama.

The coordinator lives in ``hey_llama.assistant.core``; submodules are
imported directly so ``hey_llama.config`` can depend on the phrase defaults
without pulling in the whole pipeline.
"""
