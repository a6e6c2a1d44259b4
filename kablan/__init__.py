"""
Kablan Store
============

Whole-document JSON persistence for the contractor books application:
a replicated server-side collection store and an offline-capable client.
"""

__version__ = "1.0.0"
