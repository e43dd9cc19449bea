"""
                Voice Ordering Core

Voice-command interpretation and dispatch for a multi-tenant
food-ordering platform: normalization, intent/entity classification,
layered situational context and prioritized command execution with
Swiss business rules.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
