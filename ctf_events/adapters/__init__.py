"""Integration adapters.

Adapters connect the lifecycle service to the external chat platform.
"""
