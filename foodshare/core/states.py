from enum import Enum


class DonationStatus(str, Enum):
    AVAILABLE = "available"
    RESERVED = "reserved"
    COMPLETED = "completed"
    EXPIRED = "expired"


class Party(str, Enum):
    DONOR = "donor"
    RECIPIENT = "recipient"


# status only moves forward, except a rejected reservation going back to the pool.
# reserved -> reserved is the donor accepting the pickup (fields change, status doesn't).
TRANSITIONS = {
    ("available", "reserved"):  {"note": "reserved"},
    ("reserved",  "reserved"):  {"note": "pickup accepted"},
    ("reserved",  "available"): {"note": "pickup rejected"},
    ("reserved",  "completed"): {"note": "both parties confirmed"},
    ("available", "expired"):   {"note": "expired"},
}


def status_value(status) -> str:
    return status.value if isinstance(status, Enum) else str(status)


def can_transition(src: str, dst: str) -> bool:
    return (status_value(src), status_value(dst)) in TRANSITIONS


def transition_note(src: str, dst: str) -> str | None:
    rule = TRANSITIONS.get((status_value(src), status_value(dst)))
    return rule["note"] if rule else None
