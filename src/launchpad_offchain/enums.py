"""
Shared Enums

Single source of truth for enums used across the codec, the calculators
and the action builder.
"""

from enum import Enum


# ============================================================================
# Network Enums
# ============================================================================


class NetworkType(str, Enum):
    """Cardano networks a launch can live on"""

    PREVIEW = "preview"
    PREPROD = "preprod"
    MAINNET = "mainnet"

    @property
    def is_mainnet(self) -> bool:
        return self is NetworkType.MAINNET


# ============================================================================
# Script Enums
# ============================================================================


class PlutusScriptVersion(str, Enum):
    """
    Version tags of compiled script exports

    The values are the `type` field of a cardano-cli text envelope.
    """

    V1 = "PlutusScriptV1"
    V2 = "PlutusScriptV2"
    V3 = "PlutusScriptV3"

    @property
    def prefix(self) -> bytes:
        """Byte prepended to the script bytes before hashing"""
        return _VERSION_PREFIX[self]

    @property
    def language(self) -> str:
        return _VERSION_LANGUAGE[self]


_VERSION_PREFIX = {
    PlutusScriptVersion.V1: b"\x01",
    PlutusScriptVersion.V2: b"\x02",
    PlutusScriptVersion.V3: b"\x03",
}

_VERSION_LANGUAGE = {
    PlutusScriptVersion.V1: "V1",
    PlutusScriptVersion.V2: "V2",
    PlutusScriptVersion.V3: "V3",
}


# ============================================================================
# Launch Enums
# ============================================================================


class Tier(str, Enum):
    """
    Contribution tiers

    - PRESALE: open from the presale tier start time to holders of a presale token
    - DEFAULT: open to everyone from the default start time
    """

    PRESALE = "presale"
    DEFAULT = "default"


class LaunchPhase(str, Enum):
    """
    Temporal phase of a launch

    Lifecycle (monotonic in time):
    - UPCOMING: no tier is open yet
    - PRESALE_ACTIVE: only the presale tier accepts commitments
    - PUBLIC_ACTIVE: the default tier accepts commitments
    - ENDED: end time passed, success or failure is decided elsewhere
    """

    UPCOMING = "upcoming"
    PRESALE_ACTIVE = "presale-active"
    PUBLIC_ACTIVE = "public-active"
    ENDED = "ended"


class LaunchTimeStatus(str, Enum):
    """Coarse status used by launch listings"""

    UPCOMING = "upcoming"
    ACTIVE = "active"
    PAST = "past"


class ActionKind(str, Enum):
    """Protocol actions the builder can assemble"""

    CREATE_COMMITMENT = "create-commitment"
    REMOVE_COMMITMENT = "remove-commitment"
    CANCEL_LAUNCH = "cancel-launch"
    RECLAIM_COMMITMENTS = "reclaim-commitments"


class Dex(int, Enum):
    """DEX a launch seeds liquidity into, as encoded on-chain"""

    WINGRIDERS_V2 = 0
    SUNDAESWAP_V3 = 1


# ============================================================================
# Codec Enums
# ============================================================================


class DecodeStatus(str, Enum):
    """
    Outcome of decoding a datum against a schema

    - OK: the datum matches the schema
    - NO_MATCH: well-formed CBOR of a different shape or out-of-range values
    - ERROR: the datum is missing or not CBOR at all
    """

    OK = "ok"
    NO_MATCH = "no-match"
    ERROR = "error"
