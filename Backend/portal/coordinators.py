"""
Lookup tables used when a verified submission becomes a client record.

The workflow receives these as plain callables so tests and other
deployments can swap the business data without touching the state machine.
"""

from .repository import Coordinator

# Midpoint of each budget tier, in USD
BUDGET_ESTIMATES: dict[str, int] = {
    "under-10k": 5000,
    "10k-25k": 17500,
    "25k-50k": 37500,
    "50k-100k": 75000,
    "100k-250k": 175000,
    "250k-500k": 375000,
    "500k-1m": 750000,
    "over-1m": 1500000,
}

COORDINATORS: dict[str, Coordinator] = {
    "musician": Coordinator(
        name="Sarah Johnson",
        email="sarah.johnson@wme.com",
        phone="+1 (555) 123-4567",
        department="Music Division",
    ),
    "actor": Coordinator(
        name="Michael Chen",
        email="michael.chen@wme.com",
        phone="+1 (555) 234-5678",
        department="Film & TV Division",
    ),
    "comedian": Coordinator(
        name="Emma Williams",
        email="emma.williams@wme.com",
        phone="+1 (555) 345-6789",
        department="Comedy Division",
    ),
    "speaker": Coordinator(
        name="David Park",
        email="david.park@wme.com",
        phone="+1 (555) 456-7890",
        department="Speakers Bureau",
    ),
    "athlete": Coordinator(
        name="Jessica Rivera",
        email="jessica.rivera@wme.com",
        phone="+1 (555) 567-8901",
        department="Sports Division",
    ),
}

DEFAULT_COORDINATOR = Coordinator(
    name="Booking Team",
    email="bookings@wme.com",
    phone="+1 (555) 123-4567",
    department="New Bookings",
)


def estimate_contract_amount(budget_range: str) -> int:
    return BUDGET_ESTIMATES.get(budget_range.strip().lower(), 0)


def assign_coordinator(artist_category: str) -> Coordinator:
    return COORDINATORS.get(artist_category.strip().lower(), DEFAULT_COORDINATOR)
