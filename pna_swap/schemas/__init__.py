"""Versioned LP payload schemas."""

from .v1 import (
    SCHEMA_VERSION,
    LPInfoResponse,
    QuoteResponse,
    LegQuoteResponse,
    InitForwardResponse,
    InitReverseResponse,
    LegOutInitResponse,
    LegInInitResponse,
    SwapStatusResponse,
    BtcFundedResponse,
    UsdcFundedResponse,
    PresignResponse,
    RailLockedResponse,
    StepResponse,
    SwapSummary,
    SwapListResponse,
    RegistryEntry,
    RegistryResponse,
)

__all__ = [
    "SCHEMA_VERSION",
    "LPInfoResponse",
    "QuoteResponse",
    "LegQuoteResponse",
    "InitForwardResponse",
    "InitReverseResponse",
    "LegOutInitResponse",
    "LegInInitResponse",
    "SwapStatusResponse",
    "BtcFundedResponse",
    "UsdcFundedResponse",
    "PresignResponse",
    "RailLockedResponse",
    "StepResponse",
    "SwapSummary",
    "SwapListResponse",
    "RegistryEntry",
    "RegistryResponse",
]
