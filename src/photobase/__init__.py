"""
Photobase - Data access layer for the photo booking and album sharing app.

Layers:
- db: Table metadata registry, SQL channel, executor
- query: Permission enforcer and declarative query compiler
- rpc: Named multi-step procedures (bookings, likes, views, maintenance)
"""

__version__ = "1.4.0"
