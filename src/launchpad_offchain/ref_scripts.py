"""
Reference Script Carriers

Every script of a launch is deployed once in a reference script carrier
output and referenced by the transactions that run it. This module maps the
output kinds of a launch to their carrier roles and locates (and verifies)
the carrier a transaction has to reference.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional

import pycardano as pc

from .contracts import ContractRegistry, ScriptArtifact
from .datums import decode_utxo
from .enums import PlutusScriptVersion
from .errors import AmbiguousError, IntegrityFaultError, NotApplicableError, NotFoundError
from .types import RefScriptCarrierDatum

if TYPE_CHECKING:
    from .indexer import Indexer

logger = logging.getLogger(__name__)


class RefScriptCarrierType(str, Enum):
    """Scripts of a launch that live in reference script carriers"""

    NODE_VALIDATOR = "node-validator"
    NODE_POLICY = "node-policy"
    FIRST_PROJECT_TOKENS_HOLDER_VALIDATOR = "first-project-tokens-holder-validator"
    FINAL_PROJECT_TOKENS_HOLDER_VALIDATOR = "final-project-tokens-holder-validator"
    PROJECT_TOKENS_HOLDER_POLICY = "project-tokens-holder-policy"
    COMMIT_FOLD_VALIDATOR = "commit-fold-validator"
    COMMIT_FOLD_POLICY = "commit-fold-policy"
    REWARDS_FOLD_VALIDATOR = "rewards-fold-validator"
    REWARDS_FOLD_POLICY = "rewards-fold-policy"


class LaunchUtxoType(str, Enum):
    """Every kind of output a launch creates"""

    NODE_VALIDATOR_REF_SCRIPT_CARRIER = "node-validator-ref-script-carrier"
    NODE_POLICY_REF_SCRIPT_CARRIER = "node-policy-ref-script-carrier"
    FIRST_PROJECT_TOKENS_HOLDER_VALIDATOR_REF_SCRIPT_CARRIER = "first-project-tokens-holder-validator-ref-script-carrier"
    FINAL_PROJECT_TOKENS_HOLDER_VALIDATOR_REF_SCRIPT_CARRIER = "final-project-tokens-holder-validator-ref-script-carrier"
    PROJECT_TOKENS_HOLDER_POLICY_REF_SCRIPT_CARRIER = "project-tokens-holder-policy-ref-script-carrier"
    COMMIT_FOLD_VALIDATOR_REF_SCRIPT_CARRIER = "commit-fold-validator-ref-script-carrier"
    COMMIT_FOLD_POLICY_REF_SCRIPT_CARRIER = "commit-fold-policy-ref-script-carrier"
    REWARDS_FOLD_VALIDATOR_REF_SCRIPT_CARRIER = "rewards-fold-validator-ref-script-carrier"
    REWARDS_FOLD_POLICY_REF_SCRIPT_CARRIER = "rewards-fold-policy-ref-script-carrier"
    NODE = "node"
    REWARDS_HOLDER = "rewards-holder"
    FIRST_PROJECT_TOKENS_HOLDER = "first-project-tokens-holder"
    FINAL_PROJECT_TOKENS_HOLDER = "final-project-tokens-holder"
    COMMIT_FOLD = "commit-fold"
    REWARDS_FOLD = "rewards-fold"
    FAIL_PROOF = "fail-proof"
    WR_POOL_PROOF = "wr-pool-proof"
    SUNDAE_POOL_PROOF = "sundae-pool-proof"
    WR_POOL = "wr-pool"
    SUNDAE_POOL = "sundae-pool"


CARRIER_TYPE_BY_UTXO_TYPE: Dict[LaunchUtxoType, Optional[RefScriptCarrierType]] = {
    LaunchUtxoType.NODE_VALIDATOR_REF_SCRIPT_CARRIER: RefScriptCarrierType.NODE_VALIDATOR,
    LaunchUtxoType.NODE_POLICY_REF_SCRIPT_CARRIER: RefScriptCarrierType.NODE_POLICY,
    LaunchUtxoType.FIRST_PROJECT_TOKENS_HOLDER_VALIDATOR_REF_SCRIPT_CARRIER: RefScriptCarrierType.FIRST_PROJECT_TOKENS_HOLDER_VALIDATOR,
    LaunchUtxoType.FINAL_PROJECT_TOKENS_HOLDER_VALIDATOR_REF_SCRIPT_CARRIER: RefScriptCarrierType.FINAL_PROJECT_TOKENS_HOLDER_VALIDATOR,
    LaunchUtxoType.PROJECT_TOKENS_HOLDER_POLICY_REF_SCRIPT_CARRIER: RefScriptCarrierType.PROJECT_TOKENS_HOLDER_POLICY,
    LaunchUtxoType.COMMIT_FOLD_VALIDATOR_REF_SCRIPT_CARRIER: RefScriptCarrierType.COMMIT_FOLD_VALIDATOR,
    LaunchUtxoType.COMMIT_FOLD_POLICY_REF_SCRIPT_CARRIER: RefScriptCarrierType.COMMIT_FOLD_POLICY,
    LaunchUtxoType.REWARDS_FOLD_VALIDATOR_REF_SCRIPT_CARRIER: RefScriptCarrierType.REWARDS_FOLD_VALIDATOR,
    LaunchUtxoType.REWARDS_FOLD_POLICY_REF_SCRIPT_CARRIER: RefScriptCarrierType.REWARDS_FOLD_POLICY,
    LaunchUtxoType.NODE: None,
    LaunchUtxoType.REWARDS_HOLDER: None,
    LaunchUtxoType.FIRST_PROJECT_TOKENS_HOLDER: None,
    LaunchUtxoType.FINAL_PROJECT_TOKENS_HOLDER: None,
    LaunchUtxoType.COMMIT_FOLD: None,
    LaunchUtxoType.REWARDS_FOLD: None,
    LaunchUtxoType.FAIL_PROOF: None,
    LaunchUtxoType.WR_POOL_PROOF: None,
    LaunchUtxoType.SUNDAE_POOL_PROOF: None,
    LaunchUtxoType.WR_POOL: None,
    LaunchUtxoType.SUNDAE_POOL: None,
}


def _check_carrier_mapping() -> None:
    missing = [t.value for t in LaunchUtxoType if t not in CARRIER_TYPE_BY_UTXO_TYPE]
    if missing:
        raise RuntimeError(f"Launch utxo types without a carrier mapping: {missing}")
    carried = [c for c in CARRIER_TYPE_BY_UTXO_TYPE.values() if c is not None]
    uncarried = [c.value for c in RefScriptCarrierType if carried.count(c) != 1]
    if uncarried:
        raise RuntimeError(f"Carrier types not mapped exactly once: {uncarried}")


_check_carrier_mapping()


def carrier_type_for(utxo_type: LaunchUtxoType) -> Optional[RefScriptCarrierType]:
    """Carrier role of an output kind, None for outputs without a reference script"""
    return CARRIER_TYPE_BY_UTXO_TYPE[utxo_type]


def utxo_type_for(carrier_type: RefScriptCarrierType) -> LaunchUtxoType:
    return next(u for u, c in CARRIER_TYPE_BY_UTXO_TYPE.items() if c is carrier_type)


@dataclass(frozen=True)
class LaunchScripts:
    """Applied scripts of one launch, by carrier role"""

    artifacts: Mapping[RefScriptCarrierType, ScriptArtifact]

    def __post_init__(self):
        missing = [c.value for c in RefScriptCarrierType if c not in self.artifacts]
        if missing:
            raise ValueError(f"Launch scripts missing: {missing}")

    @classmethod
    def from_registry(
        cls, registry: ContractRegistry, names: Optional[Mapping[RefScriptCarrierType, str]] = None
    ) -> "LaunchScripts":
        """
        Load the applied scripts of a launch from a contract registry

        Args:
            registry: Registry holding the applied script exports
            names: Export name per role, defaults to the role with underscores
        """
        names = names or {}
        return cls(
            {
                role: registry.artifact(names.get(role, role.value.replace("-", "_")))
                for role in RefScriptCarrierType
            }
        )

    def __getitem__(self, role: RefScriptCarrierType) -> ScriptArtifact:
        return self.artifacts[role]

    def hash(self, role: RefScriptCarrierType) -> bytes:
        return self.artifacts[role].hash

    def address(self, role: RefScriptCarrierType, network: pc.Network) -> pc.Address:
        return self.artifacts[role].address(network)

    @property
    def node_validity_unit(self) -> str:
        """Token every commitment node holds: node policy / node validator hash"""
        return (self.hash(RefScriptCarrierType.NODE_POLICY) + self.hash(RefScriptCarrierType.NODE_VALIDATOR)).hex()

    @property
    def tokens_holder_validity_unit(self) -> str:
        """Token held by the first project tokens holder"""
        return (
            self.hash(RefScriptCarrierType.PROJECT_TOKENS_HOLDER_POLICY)
            + self.hash(RefScriptCarrierType.FIRST_PROJECT_TOKENS_HOLDER_VALIDATOR)
        ).hex()


_SCRIPT_VERSIONS = {
    pc.PlutusV1Script: PlutusScriptVersion.V1,
    pc.PlutusV2Script: PlutusScriptVersion.V2,
    pc.PlutusV3Script: PlutusScriptVersion.V3,
}


def embedded_artifact(utxo: pc.UTxO) -> Optional[ScriptArtifact]:
    """Script artifact of the reference script held by an output"""
    script = utxo.output.script
    version = _SCRIPT_VERSIONS.get(type(script))
    if version is None:
        return None
    return ScriptArtifact(raw_bytes=bytes(script), version=version)


@dataclass(frozen=True)
class RefScriptCarrierUtxo:
    """A verified reference script carrier"""

    utxo: pc.UTxO
    carrier_type: RefScriptCarrierType
    artifact: ScriptArtifact
    datum: Optional[RefScriptCarrierDatum] = field(default=None, compare=False)

    @property
    def input(self) -> pc.TransactionInput:
        return self.utxo.input

    @property
    def script_hash(self) -> bytes:
        return self.artifact.hash

    @property
    def script_size(self) -> int:
        return len(self.artifact.raw_bytes)


class RefScriptLocator:
    """Finds the reference script carrier a transaction must reference"""

    def __init__(self, indexer: "Indexer", launches: Optional[Mapping[str, LaunchScripts]] = None):
        """
        Initialize locator

        Args:
            indexer: Chain indexer queried on every lookup
            launches: Expected scripts per launch transaction id
        """
        self.indexer = indexer
        self._launches: Dict[str, LaunchScripts] = dict(launches or {})

    def register_launch(self, launch_tx_id: str, scripts: LaunchScripts) -> None:
        self._launches[launch_tx_id] = scripts

    def expected_artifact(self, launch_tx_id: str, carrier_type: RefScriptCarrierType) -> ScriptArtifact:
        scripts = self._launches.get(launch_tx_id)
        if scripts is None:
            raise NotFoundError(f"No scripts registered for launch {launch_tx_id}")
        return scripts[carrier_type]

    def locate(self, launch_tx_id: str, utxo_type: LaunchUtxoType) -> RefScriptCarrierUtxo:
        """
        Locate the carrier holding the script of an output kind

        Args:
            launch_tx_id: Transaction id of the launch
            utxo_type: Output kind whose script is needed

        Returns:
            The single unspent carrier, verified against the expected script

        Raises:
            NotApplicableError: If the output kind has no reference script
            NotFoundError: If no carrier exists (yet)
            AmbiguousError: If more than one unspent carrier exists
            IntegrityFaultError: If the carrier holds a different script. Only
                indexers that record carriers per launch and role surface
                this; BlockfrostIndexer selects carriers by script hash, so
                there a mismatching carrier is reported as NotFoundError
        """
        carrier_type = carrier_type_for(utxo_type)
        if carrier_type is None:
            raise NotApplicableError(f"{utxo_type.value} outputs do not carry a reference script")

        expected = self.expected_artifact(launch_tx_id, carrier_type)
        candidates: List[pc.UTxO] = self.indexer.ref_script_carriers(launch_tx_id, carrier_type)
        if not candidates:
            raise NotFoundError(f"No {carrier_type.value} carrier found for launch {launch_tx_id}")
        if len(candidates) > 1:
            refs = ", ".join(str(c.input) for c in candidates)
            raise AmbiguousError(f"{len(candidates)} {carrier_type.value} carriers found for launch {launch_tx_id}: {refs}")

        utxo = candidates[0]
        embedded = embedded_artifact(utxo)
        if embedded is None or embedded.hash != expected.hash:
            actual = embedded.hash_hex if embedded else "no Plutus script"
            logger.error(
                f"Carrier {utxo.input} of {carrier_type.value} holds {actual}, expected {expected.hash_hex}"
            )
            raise IntegrityFaultError(
                f"{carrier_type.value} carrier {utxo.input} holds {actual}, expected {expected.hash_hex}"
            )

        return RefScriptCarrierUtxo(
            utxo=utxo,
            carrier_type=carrier_type,
            artifact=embedded,
            datum=decode_utxo(RefScriptCarrierDatum, utxo),
        )

    def locate_role(self, launch_tx_id: str, carrier_type: RefScriptCarrierType) -> RefScriptCarrierUtxo:
        return self.locate(launch_tx_id, utxo_type_for(carrier_type))
