"""Background tasks for the booking engine.

This package contains Celery tasks for:
- Completing expired trainer bookings
"""
