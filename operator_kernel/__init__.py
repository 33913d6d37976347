"""
Operator Kernel - back-office cost lifecycle for tour bookings.

Tracks supplier costs ("operators") booked against customer requests with:
- Guarded payment approval, locking and unlocking
- Append-only, hash-chained history of every mutation
- Read-only payment-status and supplier-balance rollups
"""

__version__ = "0.1.0"
