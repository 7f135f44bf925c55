"""Ticket store implementations."""
