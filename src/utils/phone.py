import re

from src.core.constants import NETWORK_PREFIXES, NetworkProvider


def normalize_phone_number(raw: str) -> str:
    """
    Clean a Nigerian mobile number to its 11-digit local form.

    Accepts spaces, dashes and the +234 / 234 international forms.
    Raises ValueError when the result is not a valid local number.
    """
    if not raw:
        raise ValueError("Phone number is required")

    digits = re.sub(r"\D", "", raw)

    if digits.startswith("234") and len(digits) == 13:
        digits = "0" + digits[3:]

    if len(digits) != 11 or not digits.startswith("0"):
        raise ValueError("Phone number must be 11 digits starting with 0")

    if detect_network(digits) is None:
        raise ValueError(f"Unrecognised network prefix: {digits[:4]}")

    return digits


def detect_network(phone_number: str) -> NetworkProvider | None:
    prefix = phone_number[:4]
    for network, prefixes in NETWORK_PREFIXES.items():
        if prefix in prefixes:
            return network
    return None


def normalize_network(raw: str) -> str:
    """Map 'mtn', 'GLO', '9MOBILE' etc. to the canonical provider name."""
    if not raw:
        raise ValueError("Network provider is required")

    for network in NetworkProvider:
        if network.value.lower() == raw.strip().lower():
            return network.value

    allowed = ", ".join(n.value for n in NetworkProvider)
    raise ValueError(f"Invalid network provider. Must be one of: {allowed}")
