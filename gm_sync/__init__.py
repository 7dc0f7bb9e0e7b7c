"""
Group Membership Sync

Reconciles a group's organization memberships against a desired membership
file and drives the directory toward it with idempotent, re-runnable batches.
"""

__version__ = "0.1.0"
