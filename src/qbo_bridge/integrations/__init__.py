"""Integration adapters for QuickBooks Online.

Keep these modules small and testable:
- No FastAPI request/response objects
- Pure IO + parsing helpers
"""
