"""Vision grounding: provider client, prompts, parsing and locators."""

from .client import VisionProviderClient, WireFormat, select_wire_format
from .dock import DockItem, DockLocator, MacDockSource
from .locator import (
    LocateOutcome,
    LocateResult,
    LocateState,
    LocatorChain,
    VerificationResult,
    VisionLocator,
)

__all__ = [
    "DockItem",
    "DockLocator",
    "LocateOutcome",
    "LocateResult",
    "LocateState",
    "LocatorChain",
    "MacDockSource",
    "VerificationResult",
    "VisionLocator",
    "VisionProviderClient",
    "WireFormat",
    "select_wire_format",
]
