"""Clerk user migration utility.

Reads sellers (``users``) and their logins from PostgreSQL, creates one Clerk
organization per seller and one Clerk user plus organization membership per
login, with rate-limit backoff and an append-only failure log for re-runs.
"""

__version__ = "0.1.0"
