"""Sync and reconciliation of provider data into the local mirror."""
