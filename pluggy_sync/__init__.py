"""Pluggy Sync: Open-Finance bank-account synchronization service."""
