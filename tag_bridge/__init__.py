"""
Player Tag Bridge

A small toolkit around a local OpenAI-compatible inference endpoint:
drains a remote queue of "find the player tag in this screenshot" jobs
using the endpoint in vision mode, and maps Gemini-style generate
requests onto the same endpoint.
"""

__version__ = "1.0.0"
__author__ = "Player Tag Bridge Team"
