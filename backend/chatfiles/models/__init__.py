"""Top-level models package.

Contains the transfer and message-composition domain models.
"""
