"""
Launchpad Off-chain Core

Builds the protocol part of launchpad transactions: script identities,
datum codecs, reference script carriers, the commitment linked list and
validity windows. Wallet handling, coin selection and signing are left to
pycardano's TransactionBuilder.
"""

from .chain_context import SLOT_CONFIGS, CardanoChainContext, SlotConfig
from .config import LaunchConfig, ProjectInfo, Settings, configure_logging, get_settings
from .contracts import ContractRegistry, ScriptArtifact, ScriptArtifactResolver, ScriptExport
from .datums import DecodeResult, decode, decode_utxo, encode_datum, try_decode
from .indexer import BlockfrostIndexer, Indexer, IndexerConnection
from .metadata import encode_launch_metadata, launch_config_from_metadata
from .nodes import CommitmentLedger, CommitmentNode
from .ref_scripts import LaunchScripts, LaunchUtxoType, RefScriptCarrierType, RefScriptLocator
from .timing import ValidityInterval, ValidityWindowCalculator
from .transactions import ProtocolAction, ProtocolActionBuilder, TransactionAssembler


__all__ = [
    "SLOT_CONFIGS",
    "CardanoChainContext",
    "SlotConfig",
    "LaunchConfig",
    "ProjectInfo",
    "Settings",
    "configure_logging",
    "get_settings",
    "ContractRegistry",
    "ScriptArtifact",
    "ScriptArtifactResolver",
    "ScriptExport",
    "DecodeResult",
    "decode",
    "decode_utxo",
    "encode_datum",
    "try_decode",
    "BlockfrostIndexer",
    "Indexer",
    "IndexerConnection",
    "encode_launch_metadata",
    "launch_config_from_metadata",
    "CommitmentLedger",
    "CommitmentNode",
    "LaunchScripts",
    "LaunchUtxoType",
    "RefScriptCarrierType",
    "RefScriptLocator",
    "ValidityInterval",
    "ValidityWindowCalculator",
    "ProtocolAction",
    "ProtocolActionBuilder",
    "TransactionAssembler",
]
