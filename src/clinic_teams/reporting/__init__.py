"""
Reporting - dashboard statistics and offline exports

Read-only: nothing in this package appends events.
"""
