"""
Launchpad Configuration

Deployment settings load from the environment / .env file. Per-launch
configuration (LaunchConfig) is immutable once the launch transaction is
submitted and is read from its metadata or supplied by the caller.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

import pycardano as pc
from pydantic import AnyUrl, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from .enums import NetworkType, Tier


# Get the project root directory (two levels up from src/launchpad_offchain/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

LOVELACE_UNIT = "lovelace"
SPLIT_BPS_BASE = 10_000

# Compiled into the node validator; not part of the launch metadata
DEFAULT_NODES_INACTIVITY_PERIOD_MS = 60 * 60 * 1000
DEFAULT_EMERGENCY_WITHDRAWAL_PERIOD_MS = 2 * 24 * 60 * 60 * 1000

ScriptHashHex = Annotated[str, Field(pattern=r"^([0-9a-fA-F]{2}){28}$")]
TxHashHex = Annotated[str, Field(pattern=r"^([0-9a-fA-F]{2}){32}$")]
# Either "lovelace" or policy id + asset name (at most 32 bytes)
Unit = Annotated[str, Field(pattern=r"^(lovelace|([0-9a-fA-F]{2}){28,60})$")]
Quantity = Annotated[int, Field(ge=0)]
POSIXTime = Annotated[int, Field(ge=0)]

_URL_ADAPTER = TypeAdapter(AnyUrl)


def parse_bech32_address(value: str, network: Optional[NetworkType] = None) -> pc.Address:
    """
    Parse a bech32 address, optionally checking it belongs to `network`

    Raises:
        ValueError: If the string is not an address or is for another network
    """
    try:
        address = pc.Address.from_primitive(value)
    except Exception as e:
        raise ValueError(f"Invalid bech32 address: {value}") from e

    if network is not None:
        expected = pc.Network.MAINNET if network.is_mainnet else pc.Network.TESTNET
        if address.network != expected:
            raise ValueError(f"Address {value} does not belong to {network.value}")
    return address


# ============================================================================
# Deployment settings
# ============================================================================


class Settings(BaseSettings):
    """
    Deployment settings of the launchpad off-chain core

    The DAO constants, the constant script hashes and the protocol constants
    are deployment configuration: they are validated here once and never
    hardcoded. Launch metadata that disagrees with them is rejected.
    """

    network: NetworkType = NetworkType.PREPROD
    blockfrost_api_key: Optional[str] = None
    artifacts_dir: Path = PROJECT_ROOT / "artifacts"
    log_level: str = "INFO"

    # DAO constants
    dao_fee_receiver_address: str
    dao_admin_pub_key_hash: ScriptHashHex

    # Constant (non-parametric) scripts shared by every launch
    ref_script_carrier_validator_hash: ScriptHashHex
    fail_proof_validator_hash: ScriptHashHex
    fail_proof_policy_hash: ScriptHashHex

    # DEX deployments of the configured network
    wr_pool_validator_hash: ScriptHashHex
    wr_factory_validator_hash: ScriptHashHex
    wr_pool_currency_symbol: ScriptHashHex
    sundae_pool_script_hash: ScriptHashHex
    sundae_settings_currency_symbol: ScriptHashHex

    # Protocol constants every launch must carry
    dao_fee_numerator: int = Field(ge=0)
    dao_fee_denominator: int = Field(gt=0)
    launch_collateral: Quantity
    node_ada: Quantity
    commit_fold_fee_ada: Quantity
    oil_ada: Quantity
    vesting_period_duration: int = Field(ge=0)
    vesting_period_duration_to_first_unlock: int = Field(ge=0)
    vesting_period_installments: int = Field(ge=0)
    vesting_validator_hash: ScriptHashHex

    # Validity windows
    tx_validity_start_backdate_ms: int = Field(default=2 * 60 * 1000, gt=0)
    tx_ttl_ms: int = Field(default=60 * 60 * 1000, gt=0)

    # Indexer connection policy
    indexer_max_reconnect_attempts: int = Field(default=3, ge=0)
    indexer_reconnect_backoff_s: float = Field(default=1.0, ge=0)

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"), env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    @model_validator(mode="after")
    def _check_dao_fee_receiver(self) -> "Settings":
        parse_bech32_address(self.dao_fee_receiver_address, self.network)
        return self

    @property
    def cardano_network(self) -> pc.Network:
        return pc.Network.MAINNET if self.network.is_mainnet else pc.Network.TESTNET


@lru_cache
def get_settings() -> Settings:
    """Settings loaded from the environment, created on first use"""
    return Settings()  # type: ignore[call-arg]  # Pydantic settings loads from env


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for scripts embedding the core"""
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


# ============================================================================
# Per-launch configuration
# ============================================================================


class TxInputRef(BaseModel):
    """Reference to a transaction output"""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    tx_hash: TxHashHex
    output_index: int = Field(ge=0)

    def to_pycardano(self) -> pc.TransactionInput:
        return pc.TransactionInput(pc.TransactionId(bytes.fromhex(self.tx_hash)), self.output_index)

    def __str__(self) -> str:
        return f"{self.tx_hash}#{self.output_index}"


class TierBounds(BaseModel):
    """Inclusive commitment bounds of a tier"""

    model_config = ConfigDict(frozen=True)

    tier: Tier
    start_time: int
    min_commitment: int
    max_commitment: int

    def contains(self, amount: int) -> bool:
        return self.min_commitment <= amount <= self.max_commitment


class LaunchConfig(BaseModel):
    """
    Static configuration of one launch

    Field aliases are the camelCase names used in the init-launch
    transaction metadata. Times are POSIX milliseconds.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    # Owner supplies the project tokens
    owner_bech32_address: str

    # Split of liquidity between Sundae (0) and WingRiders (10_000)
    split_bps: int = Field(ge=0, le=SPLIT_BPS_BASE)

    # DEX deployments
    wr_pool_validator_hash: ScriptHashHex
    wr_factory_validator_hash: ScriptHashHex
    wr_pool_currency_symbol: ScriptHashHex
    sundae_pool_script_hash: ScriptHashHex
    sundae_fee_tolerance: Quantity
    sundae_settings_currency_symbol: ScriptHashHex

    # Schedule
    start_time: POSIXTime
    end_time: POSIXTime

    # Tokens
    project_token: Unit
    raising_token: Unit
    project_min_commitment: Quantity
    project_max_commitment: Quantity
    total_tokens: Quantity
    tokens_to_distribute: Quantity
    raised_tokens_pool_part_percentage: int = Field(ge=0, le=100)

    # DAO
    dao_fee_numerator: int = Field(ge=0)
    dao_fee_denominator: int = Field(gt=0)
    dao_fee_receiver_bech32_address: str
    dao_admin_pub_key_hash: ScriptHashHex
    collateral: Quantity

    # The utxo spent by the launch transaction, identifies the launch scripts
    starter: TxInputRef

    # Vesting of the owner's share
    vesting_period_duration: POSIXTime
    vesting_period_duration_to_first_unlock: POSIXTime
    vesting_period_installments: int = Field(ge=0)
    vesting_period_start: POSIXTime
    vesting_validator_hash: ScriptHashHex

    # Tiers
    presale_tier_cs: ScriptHashHex
    presale_tier_start_time: POSIXTime
    default_start_time: POSIXTime
    presale_tier_min_commitment: Quantity
    default_tier_min_commitment: Quantity
    presale_tier_max_commitment: Quantity
    default_tier_max_commitment: Quantity

    # Lovelace amounts
    node_ada: Quantity
    commit_fold_fee_ada: Quantity
    oil_ada: Quantity

    # Durations compiled into the scripts
    nodes_inactivity_period: int = Field(default=DEFAULT_NODES_INACTIVITY_PERIOD_MS, ge=0)
    emergency_withdrawal_period: int = Field(default=DEFAULT_EMERGENCY_WITHDRAWAL_PERIOD_MS, ge=0)

    @field_validator("owner_bech32_address", "dao_fee_receiver_bech32_address")
    @classmethod
    def _check_address(cls, value: str) -> str:
        parse_bech32_address(value)
        return value

    @model_validator(mode="after")
    def _check_schedule(self) -> "LaunchConfig":
        if self.vesting_period_start != self.end_time:
            raise ValueError("vestingPeriodStart must be equal to endTime")
        if self.start_time >= self.end_time:
            raise ValueError("startTime must be before endTime")
        if self.start_time > min(self.presale_tier_start_time, self.default_start_time):
            raise ValueError("startTime must not be after the tier start times")
        if self.presale_tier_min_commitment > self.presale_tier_max_commitment:
            raise ValueError("presale tier min commitment exceeds its max commitment")
        if self.default_tier_min_commitment > self.default_tier_max_commitment:
            raise ValueError("default tier min commitment exceeds its max commitment")
        return self

    @property
    def owner_address(self) -> pc.Address:
        return pc.Address.from_primitive(self.owner_bech32_address)

    @property
    def owner_pub_key_hash(self) -> str:
        return self.owner_address.payment_part.payload.hex()

    @property
    def dao_fee_receiver_address(self) -> pc.Address:
        return pc.Address.from_primitive(self.dao_fee_receiver_bech32_address)

    @property
    def uses_wr(self) -> bool:
        return self.split_bps > 0

    @property
    def uses_sundae(self) -> bool:
        return self.split_bps < SPLIT_BPS_BASE

    @property
    def has_presale_tier(self) -> bool:
        return self.presale_tier_start_time < self.end_time

    @property
    def has_default_tier(self) -> bool:
        return self.default_start_time < self.end_time

    def tier_bounds(self, tier: Tier) -> TierBounds:
        if tier is Tier.PRESALE:
            return TierBounds(
                tier=tier,
                start_time=self.presale_tier_start_time,
                min_commitment=self.presale_tier_min_commitment,
                max_commitment=self.presale_tier_max_commitment,
            )
        return TierBounds(
            tier=tier,
            start_time=self.default_start_time,
            min_commitment=self.default_tier_min_commitment,
            max_commitment=self.default_tier_max_commitment,
        )


class ProjectInfo(BaseModel):
    """Human-readable project information published with a launch"""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    title: str = Field(max_length=64)
    description: str = Field(max_length=300)
    url: str = Field(max_length=100)
    logo_url: str = Field(max_length=300)
    tokenomics_url: str = Field(max_length=100)
    whitepaper_url: Optional[str] = Field(default=None, max_length=100)
    terms_and_conditions_url: Optional[str] = Field(default=None, max_length=100)
    additional_url: Optional[str] = Field(default=None, max_length=100)

    @field_validator("url", "logo_url", "tokenomics_url", "whitepaper_url", "terms_and_conditions_url", "additional_url")
    @classmethod
    def _check_url(cls, value: Optional[str]) -> Optional[str]:
        # Kept as the given string so the metadata round-trips unchanged
        if value is not None:
            try:
                _URL_ADAPTER.validate_python(value)
            except ValidationError as e:
                raise ValueError(f"Invalid URL: {value}") from e
        return value
