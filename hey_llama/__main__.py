"""
Entry point for running hey-llama as a module.

Usage: python -m hey_llama
"""

from hey_llama.cli import main

if __name__ == "__main__":
    main()
