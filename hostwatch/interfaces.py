from __future__ import annotations

WIFI = "Wi-Fi"
ETHERNET = "Ethernet"
LOOPBACK = "Loopback"
PPP = "PPP"
UNKNOWN = "Unknown"

# First match wins: a "Wireless LAN Adapter" description also contains
# "lan", so Wi-Fi must be tested before Ethernet.
_RULES: tuple[tuple[str, tuple[str, ...], tuple[str, ...]], ...] = (
    (WIFI, ("wifi", "wlan"), ("wireless", "wi-fi", "802.11")),
    (ETHERNET, ("eth", "en"), ("ethernet", "lan")),
    (LOOPBACK, ("lo",), ("loopback",)),
    (PPP, ("ppp",), ("point-to-point",)),
)


def classify_interface(name: str | None, description: str | None = None) -> str:
    """Map an interface name/description to Wi-Fi, Ethernet, Loopback, PPP or Unknown."""
    name = (name or "").lower()
    description = (description or "").lower()
    for kind, name_tokens, desc_tokens in _RULES:
        if any(token in name for token in name_tokens):
            return kind
        if any(token in description for token in desc_tokens):
            return kind
    return UNKNOWN
