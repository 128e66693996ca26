"""
Data Models Module

This module defines Pydantic models shared by the relay components.

Models are organized by functional area:
- Account models (what the shared identity store returns)
- Flow models (the relay state carried in every hop URL)
- Hop outcome models (result of validating one hop)
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# Account id carried in relay URLs planned from a hop that holds no session.
ANONYMOUS_ACCOUNT_ID = 0

# Token placeholder paired with ANONYMOUS_ACCOUNT_ID; never a valid MAC.
ANONYMOUS_TOKEN = "-"


# ============================================================================
# Account Models
# ============================================================================

class Account(BaseModel):
    """Account record as returned by the shared identity store."""
    model_config = ConfigDict(frozen=True)

    id: int = Field(..., description="Account identifier", gt=0)
    email: EmailStr = Field(..., description="Account email address")
    password_hash: str = Field(..., description="Current credential hash", min_length=1)
    active: bool = Field(default=True, description="False when the account is blocked")


# ============================================================================
# Flow Models
# ============================================================================

class FlowState(BaseModel):
    """
    Relay state for one hop, decoded from the relay URL.

    Nothing here is stored server side: the referrer fingerprint, the account,
    the issuance timestamp and the token travel with the browser from hop to hop.
    """
    referrer: int = Field(..., description="Checksum of the domain the flow started from", ge=0)
    account_id: int = Field(..., description="Account being relayed", ge=0)
    timestamp: int = Field(..., description="Token issuance time (unix seconds)", ge=0)
    token: str = Field(..., description="Relay token issued by the previous hop", min_length=1)
    langcode: str = Field(..., description="Language of the terminal destination")


# ============================================================================
# Hop Outcome Models
# ============================================================================

class RelayState(str, Enum):
    AWAITING_VALIDATION = "awaiting_validation"
    AUTHORIZED = "authorized"
    REJECTED = "rejected"
    EXPIRED = "expired"


class HopOutcome(str, Enum):
    SESSION_ESTABLISHED = "session_established"
    ALREADY_AUTHENTICATED = "already_authenticated"
    TOKEN_EXPIRED = "token_expired"
    TOKEN_INVALID = "token_invalid"
    ACCOUNT_UNAVAILABLE = "account_unavailable"


class HopResult(BaseModel):
    """Result of validating a single hop; only used for logging and the response status header."""
    state: RelayState = Field(..., description="Final state of the hop state machine")
    status_code: int = Field(..., description="HTTP status describing the hop (200 or 403)")
    outcome: HopOutcome = Field(..., description="Why the hop ended in its state")

    @property
    def authorized(self) -> bool:
        return self.state == RelayState.AUTHORIZED
