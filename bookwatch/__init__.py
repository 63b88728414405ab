"""
Bookwatch - booking dashboard daemon package

This is the root package for Bookwatch, containing shared utilities and the
dashboard engine that keeps a user's bookings live against a remote document
store and raises reminders as appointments approach.

Core modules:
- datetime_utils: Clock helpers and booking date/time parsing
- utils: Environment-style value parsing
- dashboard: Live aggregation, upcoming view and reminder scheduling
"""

__version__ = "0.4.2"
