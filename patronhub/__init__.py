"""
PatronHub Backend

A self-hosted archiver for paid creator subscriptions.
Discovers Patreon memberships and posts, downloads their media and keeps a
browsable on-disk archive with seen/unseen tracking.
"""

__version__ = "0.1.0"
