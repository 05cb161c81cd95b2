"""Booking-ID client portal backend."""
