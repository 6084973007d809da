"""Long-lived in-process services built on the QBO session and gateway.

Exports:
- TokenRefreshScheduler: periodic access-token renewal
- CustomerListBridge: future-based access to the full customer list
"""

from qbo_bridge.services.customer_bridge import CustomerListBridge
from qbo_bridge.services.refresh_scheduler import TokenRefreshScheduler

__all__ = [
    "CustomerListBridge",
    "TokenRefreshScheduler",
]
