"""
PMO Platform
Blueprint registry.

Each engine is exposed through a single POST action-dispatch endpoint.
"""
