"""
Application modules.

Each bounded context lives under `backend/cleanup_api/modules/*`. Routers call
the coordinators here rather than reaching into repositories or payment
adapters directly.
"""
