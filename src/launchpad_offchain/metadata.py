"""
Launch Transaction Metadata

The init-launch transaction publishes the launch configuration and the
project information as metadata under label 0:

    {
        0: {
            "config": {...LaunchConfig, camelCase keys...},
            "projectInfo": {...ProjectInfo, camelCase keys...}
        }
    }

Metadata strings are limited to 64 bytes, so longer strings are split into
lists of chunks. Hex fields and bech32 addresses are stored as raw bytes,
quantities as decimal strings.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

import pycardano as pc
from pydantic import ValidationError
from pydantic.alias_generators import to_camel

from .config import LOVELACE_UNIT, LaunchConfig, ProjectInfo, Settings

logger = logging.getLogger(__name__)

LAUNCH_METADATA_LABEL = 0
METADATA_MAX_STR_BYTES = 64

_ADDRESS_FIELDS = ("owner_bech32_address", "dao_fee_receiver_bech32_address")
_HEX_FIELDS = (
    "wr_pool_validator_hash",
    "wr_factory_validator_hash",
    "wr_pool_currency_symbol",
    "sundae_pool_script_hash",
    "sundae_settings_currency_symbol",
    "dao_admin_pub_key_hash",
    "vesting_validator_hash",
    "presale_tier_cs",
)
_UNIT_FIELDS = ("project_token", "raising_token")
_QUANTITY_FIELDS = (
    "sundae_fee_tolerance",
    "project_min_commitment",
    "project_max_commitment",
    "total_tokens",
    "tokens_to_distribute",
    "collateral",
    "presale_tier_min_commitment",
    "default_tier_min_commitment",
    "presale_tier_max_commitment",
    "default_tier_max_commitment",
    "node_ada",
    "commit_fold_fee_ada",
    "oil_ada",
)
# Compiled into the scripts, not published
_UNPUBLISHED_FIELDS = {"nodes_inactivity_period", "emergency_withdrawal_period"}


def split_metadatum_string(value: str) -> Union[str, List[str]]:
    """
    Split a string into chunks of at most 64 UTF-8 bytes

    Strings that fit are returned unchanged. A character is never split
    across two chunks.
    """
    if len(value.encode("utf-8")) <= METADATA_MAX_STR_BYTES:
        return value

    chunks = []
    current = ""
    current_size = 0
    for char in value:
        char_size = len(char.encode("utf-8"))
        if current_size + char_size > METADATA_MAX_STR_BYTES:
            chunks.append(current)
            current, current_size = "", 0
        current += char
        current_size += char_size
    if current:
        chunks.append(current)
    return chunks


def join_metadatum_string(value: Union[str, List[str]]) -> str:
    if isinstance(value, list):
        return "".join(value)
    return value


def encode_metadatum(value: Any) -> Any:
    """
    Encode a value as a metadatum

    Strings are chunked, lists and dicts are encoded recursively, bytes and
    integers are kept.
    """
    if isinstance(value, str):
        return split_metadatum_string(value)
    if isinstance(value, dict):
        return {key: encode_metadatum(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [encode_metadatum(item) for item in value]
    if isinstance(value, (bytes, int)):
        return value
    raise TypeError(f"Cannot encode {type(value).__name__} as metadatum")


def _unit_to_bytes(unit: str) -> bytes:
    return b"" if unit == LOVELACE_UNIT else bytes.fromhex(unit)


def _unit_from_bytes(value: bytes) -> str:
    return LOVELACE_UNIT if value == b"" else value.hex()


def _alias(field_name: str) -> str:
    return LaunchConfig.model_fields[field_name].alias or field_name


def encode_launch_config(config: LaunchConfig) -> Dict[str, Any]:
    """Config part of the launch metadata"""
    encoded: Dict[str, Any] = {}
    for name in LaunchConfig.model_fields:
        if name in _UNPUBLISHED_FIELDS:
            continue
        value = getattr(config, name)
        if name in _ADDRESS_FIELDS:
            value = pc.Address.from_primitive(value).to_primitive()
        elif name in _HEX_FIELDS:
            value = bytes.fromhex(value)
        elif name in _UNIT_FIELDS:
            value = _unit_to_bytes(value)
        elif name in _QUANTITY_FIELDS:
            value = str(value)
        elif name == "starter":
            value = value.model_dump(by_alias=True)
        encoded[_alias(name)] = value
    return encode_metadatum(encoded)


def encode_project_info(project_info: ProjectInfo) -> Dict[str, Any]:
    """Project info part of the launch metadata, optional links omitted when unset"""
    return encode_metadatum(project_info.model_dump(by_alias=True, exclude_none=True))


def encode_launch_metadata(config: LaunchConfig, project_info: ProjectInfo) -> pc.AuxiliaryData:
    """
    Prepare the init-launch transaction metadata

    Returns:
        AuxiliaryData ready to attach to transaction
    """
    launch_metadata = {
        LAUNCH_METADATA_LABEL: {
            "config": encode_launch_config(config),
            "projectInfo": encode_project_info(project_info),
        }
    }
    metadata_obj = pc.Metadata(launch_metadata)
    alonzo_metadata = pc.AlonzoMetadata(metadata=metadata_obj)
    return pc.AuxiliaryData(alonzo_metadata)


def _decode_launch_config_fields(encoded: Dict[str, Any]) -> Dict[str, Any]:
    by_alias = {_alias(name): name for name in LaunchConfig.model_fields}
    decoded: Dict[str, Any] = {}
    for key, value in encoded.items():
        name = by_alias.get(key)
        if name is None:
            continue
        if isinstance(value, list) and name != "starter":
            value = join_metadatum_string(value)
        if name in _ADDRESS_FIELDS:
            value = pc.Address.from_primitive(value).encode()
        elif name in _HEX_FIELDS:
            value = value.hex()
        elif name in _UNIT_FIELDS:
            value = _unit_from_bytes(value)
        decoded[name] = value
    return decoded


# Launch config field -> Settings field it must equal
_PROTOCOL_CONSTANTS = (
    ("wr_pool_validator_hash", "wr_pool_validator_hash"),
    ("wr_factory_validator_hash", "wr_factory_validator_hash"),
    ("wr_pool_currency_symbol", "wr_pool_currency_symbol"),
    ("sundae_pool_script_hash", "sundae_pool_script_hash"),
    ("sundae_settings_currency_symbol", "sundae_settings_currency_symbol"),
    ("dao_fee_numerator", "dao_fee_numerator"),
    ("dao_fee_denominator", "dao_fee_denominator"),
    ("dao_fee_receiver_bech32_address", "dao_fee_receiver_address"),
    ("dao_admin_pub_key_hash", "dao_admin_pub_key_hash"),
    ("collateral", "launch_collateral"),
    ("vesting_period_duration", "vesting_period_duration"),
    ("vesting_period_duration_to_first_unlock", "vesting_period_duration_to_first_unlock"),
    ("vesting_period_installments", "vesting_period_installments"),
    ("vesting_validator_hash", "vesting_validator_hash"),
    ("node_ada", "node_ada"),
    ("commit_fold_fee_ada", "commit_fold_fee_ada"),
    ("oil_ada", "oil_ada"),
)


def _check_protocol_constants(config: LaunchConfig, settings: Settings) -> Optional[str]:
    for config_field, settings_field in _PROTOCOL_CONSTANTS:
        actual = getattr(config, config_field)
        expected = getattr(settings, settings_field)
        # Hex fields compare case-insensitively
        if isinstance(expected, str):
            matches = actual.lower() == expected.lower()
        else:
            matches = actual == expected
        if not matches:
            return f"{to_camel(config_field)} must be equal to {expected}"
    return None


def launch_config_from_metadata(
    metadata: Union[pc.AuxiliaryData, pc.Metadata, Dict[int, Any]],
    settings: Settings,
) -> Optional[Tuple[LaunchConfig, ProjectInfo]]:
    """
    Read the launch configuration back from init-launch metadata

    Args:
        metadata: Auxiliary data of the launch transaction or its metadata map
        settings: Deployment settings holding the DAO and protocol constants

    Returns:
        Launch config and project info, or None if the metadata is not a valid
        launch of this deployment
    """
    if isinstance(metadata, pc.AuxiliaryData):
        inner = metadata.data
        metadata = inner.metadata if isinstance(inner, pc.AlonzoMetadata) else inner
    if isinstance(metadata, pc.Metadata):
        metadata = metadata.data
    entry = metadata.get(LAUNCH_METADATA_LABEL)
    if not isinstance(entry, dict) or "config" not in entry or "projectInfo" not in entry:
        logger.warning("Launch metadata is missing the config or the project info")
        return None

    try:
        config = LaunchConfig.model_validate(_decode_launch_config_fields(entry["config"]))
        project_info = ProjectInfo.model_validate(
            {key: join_metadatum_string(value) for key, value in entry["projectInfo"].items()}
        )
    except (ValidationError, ValueError, TypeError, AttributeError) as e:
        logger.warning(f"Invalid launch metadata: {e}")
        return None

    mismatch = _check_protocol_constants(config, settings)
    if mismatch:
        logger.warning(f"Launch metadata does not match the deployment: {mismatch}")
        return None
    return config, project_info
