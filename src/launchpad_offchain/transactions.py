"""
Protocol Actions

The ProtocolActionBuilder composes the artifact, codec, locator, ledger and
window components into the protocol-mandated part of a transaction: script
inputs with redeemers, reference inputs, outputs with inline datums,
mints and burns, required signers and the validity interval.

Coin selection, fees, signing and submission belong to the wallet side and
are done by the TransactionAssembler on top of pycardano's TransactionBuilder.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

import pycardano as pc
from blockfrost import ApiError

from .chain_context import SLOT_CONFIGS, CardanoChainContext, SlotConfig
from .config import LOVELACE_UNIT, LaunchConfig, Settings
from .datums import decode_utxo
from .enums import ActionKind, Tier
from .errors import (
    ActionBuildError,
    AmbiguousError,
    InputAlreadySpentError,
    LaunchpadError,
    NotFoundError,
    WindowInfeasibleError,
)
from .indexer import Indexer
from .nodes import CommitmentLedger, CommitmentNode
from .ref_scripts import LaunchScripts, LaunchUtxoType, RefScriptCarrierType, RefScriptCarrierUtxo, RefScriptLocator
from .timing import ValidityInterval, ValidityWindowCalculator, active_tier, check_tier_bounds
from .types import (
    CancelLaunch,
    InsertNode,
    NodeDatum,
    NodeKey,
    ReclaimAfterFailure,
    RemoveCurrentNode,
    RemoveNextNode,
    ScriptHashDatum,
    maybe_node_key,
)

logger = logging.getLogger(__name__)

# On-chain encoding of the tier in the InsertNode redeemer
_TIER_REDEEMER = {Tier.PRESALE: 0, Tier.DEFAULT: 1}


@dataclass(frozen=True)
class ScriptInput:
    """A script-locked output spent with a redeemer, its script taken from a carrier"""

    utxo: pc.UTxO
    redeemer: pc.PlutusData
    carrier: RefScriptCarrierUtxo


@dataclass(frozen=True)
class MintEntry:
    """Mint (positive) or burn (negative) of one asset under a script policy"""

    policy_id: bytes
    asset_name: bytes
    quantity: int
    carrier: RefScriptCarrierUtxo
    # The launchpad minting policies take an empty list as redeemer
    redeemer: Any = field(default_factory=list)


@dataclass
class ProtocolAction:
    """Protocol-mandated part of a transaction, ready for the wallet to balance"""

    kind: ActionKind
    validity: ValidityInterval
    script_inputs: List[ScriptInput] = field(default_factory=list)
    reference_inputs: List[pc.UTxO] = field(default_factory=list)
    outputs: List[pc.TransactionOutput] = field(default_factory=list)
    mints: List[MintEntry] = field(default_factory=list)
    required_signers: List[pc.VerificationKeyHash] = field(default_factory=list)
    # Units the wallet has to spend an output holding, e.g. the presale token
    required_wallet_units: List[str] = field(default_factory=list)
    created_node: Optional[NodeKey] = None

    @property
    def mint(self) -> Optional[pc.MultiAsset]:
        if not self.mints:
            return None
        assets: Dict[bytes, Dict[bytes, int]] = {}
        for entry in self.mints:
            policy = assets.setdefault(entry.policy_id, {})
            policy[entry.asset_name] = policy.get(entry.asset_name, 0) + entry.quantity
        return pc.MultiAsset.from_primitive(assets)


def unit_value(unit: str, quantity: int) -> pc.Value:
    """Value holding `quantity` of a unit ("lovelace" or policy id + asset name hex)"""
    if unit == LOVELACE_UNIT:
        return pc.Value(quantity)
    return pc.Value(0, pc.MultiAsset.from_primitive({bytes.fromhex(unit[:56]): {bytes.fromhex(unit[56:]): quantity}}))


def utxo_holds(utxo: pc.UTxO, unit: str) -> bool:
    if unit == LOVELACE_UNIT:
        return utxo.output.amount.coin > 0
    policy_id = pc.ScriptHash(bytes.fromhex(unit[:56]))
    asset_name = pc.AssetName(bytes.fromhex(unit[56:]))
    return utxo.output.amount.multi_asset.get(policy_id, {}).get(asset_name, 0) > 0


class ProtocolActionBuilder:
    """Builds the protocol actions of one launch"""

    def __init__(
        self,
        config: LaunchConfig,
        launch_tx_id: str,
        scripts: LaunchScripts,
        indexer: Indexer,
        settings: Settings,
        slot_config: Optional[SlotConfig] = None,
    ):
        """
        Initialize action builder

        Args:
            config: Configuration of the launch
            launch_tx_id: Transaction id of the init-launch transaction
            scripts: Applied scripts of the launch
            indexer: Chain indexer, read fresh on every build
            settings: Deployment settings (network, constant scripts, window sizes)
            slot_config: Slot model, defaults to the one of the configured network
        """
        self.config = config
        self.launch_tx_id = launch_tx_id
        self.scripts = scripts
        self.indexer = indexer
        self.settings = settings
        self.network = settings.cardano_network
        self.slot_config = slot_config or SLOT_CONFIGS[settings.network]

        self.locator = RefScriptLocator(indexer, {launch_tx_id: scripts})
        self.ledger = CommitmentLedger(indexer, config.nodes_inactivity_period)
        self.windows = ValidityWindowCalculator(
            self.slot_config, settings.tx_validity_start_backdate_ms, settings.tx_ttl_ms
        )

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _carrier(self, utxo_type: LaunchUtxoType) -> RefScriptCarrierUtxo:
        return self.locator.locate(self.launch_tx_id, utxo_type)

    def _single_utxo(self, address: pc.Address, unit: str, description: str) -> pc.UTxO:
        matches = [u for u in self.indexer.utxos_at(address) if utxo_holds(u, unit)]
        if not matches:
            raise NotFoundError(f"No {description} found at {address}")
        if len(matches) > 1:
            refs = ", ".join(str(u.input) for u in matches)
            raise AmbiguousError(f"{len(matches)} {description} outputs found: {refs}")
        return matches[0]

    def first_tokens_holder(self) -> pc.UTxO:
        """The first project tokens holder of the launch"""
        return self._single_utxo(
            self.scripts.address(RefScriptCarrierType.FIRST_PROJECT_TOKENS_HOLDER_VALIDATOR, self.network),
            self.scripts.tokens_holder_validity_unit,
            "first project tokens holder",
        )

    def fail_proof(self) -> pc.UTxO:
        """The fail proof of the launch, only present once the launch failed"""
        validator_hash = bytes.fromhex(self.settings.fail_proof_validator_hash)
        address = pc.Address(payment_part=pc.ScriptHash(validator_hash), network=self.network)
        unit = self.settings.fail_proof_policy_hash + self.settings.fail_proof_validator_hash
        node_validator_hash = self.scripts.hash(RefScriptCarrierType.NODE_VALIDATOR)

        proofs = [
            u
            for u in self.indexer.utxos_at(address)
            if utxo_holds(u, unit) and decode_utxo(ScriptHashDatum, u) == node_validator_hash
        ]
        if not proofs:
            raise NotFoundError(f"No fail proof found for launch {self.launch_tx_id}")
        if len(proofs) > 1:
            raise AmbiguousError(f"{len(proofs)} fail proofs found for launch {self.launch_tx_id}")
        return proofs[0]

    def _node_address(self, owner_stake_key_hash: Optional[bytes]) -> pc.Address:
        staking_part = pc.VerificationKeyHash(owner_stake_key_hash) if owner_stake_key_hash else None
        return pc.Address(
            payment_part=self.scripts[RefScriptCarrierType.NODE_VALIDATOR].script_hash,
            staking_part=staking_part,
            network=self.network,
        )

    def _node_validity_token(self, quantity: int, carrier: RefScriptCarrierUtxo) -> MintEntry:
        return MintEntry(
            policy_id=self.scripts.hash(RefScriptCarrierType.NODE_POLICY),
            asset_name=self.scripts.hash(RefScriptCarrierType.NODE_VALIDATOR),
            quantity=quantity,
            carrier=carrier,
        )

    @staticmethod
    def _reemit(node: CommitmentNode, next_key: Optional[NodeKey]) -> pc.TransactionOutput:
        """Predecessor node output with the same address and value and a new next key"""
        return pc.TransactionOutput(node.utxo.output.address, node.utxo.output.amount, datum=node.with_next(next_key))

    # ------------------------------------------------------------------
    # Create commitment
    # ------------------------------------------------------------------

    def create_commitment(
        self,
        owner_pub_key_hash: bytes,
        amount: int,
        now: int,
        presale_unit: Optional[str] = None,
        owner_stake_key_hash: Optional[bytes] = None,
    ) -> ProtocolAction:
        """
        Insert a new commitment node of `owner_pub_key_hash`

        Args:
            owner_pub_key_hash: Payment key hash of the contributor
            amount: Committed amount of the raising token
            now: Reference time (POSIX ms)
            presale_unit: Presale token held by the contributor's wallet, if any
            owner_stake_key_hash: Stake key of the node address, if any

        Raises:
            ActionBuildError: Wrapping the component failure
        """
        try:
            action = self._create_commitment(owner_pub_key_hash, amount, now, presale_unit, owner_stake_key_hash)
        except LaunchpadError as e:
            raise ActionBuildError(ActionKind.CREATE_COMMITMENT, e) from e

        logger.info(
            f"Built commitment of {amount} by {owner_pub_key_hash.hex()} "
            f"as node #{action.created_node.index} in launch {self.launch_tx_id}"
        )
        return action

    def _create_commitment(
        self,
        owner_pub_key_hash: bytes,
        amount: int,
        now: int,
        presale_unit: Optional[str],
        owner_stake_key_hash: Optional[bytes],
    ) -> ProtocolAction:
        holds_presale_token = presale_unit is not None and presale_unit[:56].lower() == self.config.presale_tier_cs.lower()
        tier = active_tier(self.config, now, holds_presale_token)
        if tier is None:
            raise WindowInfeasibleError(f"No tier accepts commitments at {now}")
        check_tier_bounds(self.config, tier, amount)

        new_key, predecessor = self.ledger.next_key_for_owner(self.launch_tx_id, owner_pub_key_hash)
        validity = self.windows.for_create(self.config, tier, now)
        # Validators take the node creation time from the upper bound
        created_time = self.slot_config.slot_to_begin_unix_time(validity.upper_slot)

        node_validator = self._carrier(LaunchUtxoType.NODE_VALIDATOR_REF_SCRIPT_CARRIER)
        node_policy = self._carrier(LaunchUtxoType.NODE_POLICY_REF_SCRIPT_CARRIER)
        tokens_holder = self.first_tokens_holder()

        validity_token = self._node_validity_token(1, node_policy)
        node_value = (
            pc.Value(self.config.node_ada)
            + unit_value(self.scripts.node_validity_unit, 1)
            + unit_value(self.config.raising_token, amount)
        )
        new_node = pc.TransactionOutput(
            self._node_address(owner_stake_key_hash),
            node_value,
            datum=NodeDatum(
                key=maybe_node_key(new_key),
                next=maybe_node_key(predecessor.next),
                created_time=created_time,
                committed=amount,
            ),
        )

        return ProtocolAction(
            kind=ActionKind.CREATE_COMMITMENT,
            validity=validity,
            script_inputs=[ScriptInput(predecessor.utxo, InsertNode(_TIER_REDEEMER[tier]), node_validator)],
            reference_inputs=[tokens_holder],
            outputs=[new_node, self._reemit(predecessor, new_key)],
            mints=[validity_token],
            required_signers=[pc.VerificationKeyHash(owner_pub_key_hash)],
            required_wallet_units=[presale_unit] if tier is Tier.PRESALE else [],
            created_node=new_key,
        )

    # ------------------------------------------------------------------
    # Remove commitment
    # ------------------------------------------------------------------

    def remove_commitment(self, node_input: pc.TransactionInput, owner_pub_key_hash: bytes, now: int) -> ProtocolAction:
        """
        Remove a commitment node, returning its funds to the wallet

        Raises:
            ActionBuildError: Wrapping the component failure
        """
        try:
            action = self._remove_commitment(node_input, owner_pub_key_hash, now)
        except LaunchpadError as e:
            raise ActionBuildError(ActionKind.REMOVE_COMMITMENT, e) from e

        logger.info(f"Built removal of node {node_input} in launch {self.launch_tx_id}")
        return action

    def _remove_commitment(self, node_input: pc.TransactionInput, owner_pub_key_hash: bytes, now: int) -> ProtocolAction:
        node = self.ledger.node(self.launch_tx_id, node_input)
        if node.owner_pub_key_hash != owner_pub_key_hash:
            raise NotFoundError(f"No node of {owner_pub_key_hash.hex()} at {node_input}")
        self.ledger.validate_removal(node, now)
        predecessor = self.ledger.find_removal_predecessor(self.launch_tx_id, node)
        validity = self.windows.for_remove(self.config, node.created_time, now)

        node_validator = self._carrier(LaunchUtxoType.NODE_VALIDATOR_REF_SCRIPT_CARRIER)
        node_policy = self._carrier(LaunchUtxoType.NODE_POLICY_REF_SCRIPT_CARRIER)

        return ProtocolAction(
            kind=ActionKind.REMOVE_COMMITMENT,
            validity=validity,
            script_inputs=[
                ScriptInput(node.utxo, RemoveCurrentNode(), node_validator),
                ScriptInput(predecessor.utxo, RemoveNextNode(), node_validator),
            ],
            outputs=[self._reemit(predecessor, node.next)],
            mints=[self._node_validity_token(-1, node_policy)],
            required_signers=[pc.VerificationKeyHash(owner_pub_key_hash)],
        )

    # ------------------------------------------------------------------
    # Cancel launch
    # ------------------------------------------------------------------

    def cancel_launch(self, now: int) -> ProtocolAction:
        """
        Cancel the launch before it starts, the project tokens go back to the owner

        Raises:
            ActionBuildError: Wrapping the component failure
        """
        try:
            action = self._cancel_launch(now)
        except LaunchpadError as e:
            raise ActionBuildError(ActionKind.CANCEL_LAUNCH, e) from e

        logger.info(f"Built cancellation of launch {self.launch_tx_id}")
        return action

    def _cancel_launch(self, now: int) -> ProtocolAction:
        validity = self.windows.for_cancel(self.config, now)
        tokens_holder = self.first_tokens_holder()
        holder_validator = self._carrier(LaunchUtxoType.FIRST_PROJECT_TOKENS_HOLDER_VALIDATOR_REF_SCRIPT_CARRIER)
        holder_policy = self._carrier(LaunchUtxoType.PROJECT_TOKENS_HOLDER_POLICY_REF_SCRIPT_CARRIER)

        return ProtocolAction(
            kind=ActionKind.CANCEL_LAUNCH,
            validity=validity,
            script_inputs=[ScriptInput(tokens_holder, CancelLaunch(), holder_validator)],
            mints=[
                MintEntry(
                    policy_id=self.scripts.hash(RefScriptCarrierType.PROJECT_TOKENS_HOLDER_POLICY),
                    asset_name=self.scripts.hash(RefScriptCarrierType.FIRST_PROJECT_TOKENS_HOLDER_VALIDATOR),
                    quantity=-1,
                    carrier=holder_policy,
                )
            ],
            required_signers=[pc.VerificationKeyHash(bytes.fromhex(self.config.owner_pub_key_hash))],
        )

    # ------------------------------------------------------------------
    # Reclaim commitments
    # ------------------------------------------------------------------

    def reclaim_commitments(self, owner_pub_key_hash: bytes, now: int) -> ProtocolAction:
        """
        Reclaim every commitment of an owner after the launch failed

        Raises:
            ActionBuildError: Wrapping the component failure
        """
        try:
            action = self._reclaim_commitments(owner_pub_key_hash, now)
        except LaunchpadError as e:
            raise ActionBuildError(ActionKind.RECLAIM_COMMITMENTS, e) from e

        logger.info(
            f"Built reclaim of {len(action.script_inputs)} nodes of {owner_pub_key_hash.hex()} "
            f"in launch {self.launch_tx_id}"
        )
        return action

    def _reclaim_commitments(self, owner_pub_key_hash: bytes, now: int) -> ProtocolAction:
        validity = self.windows.for_reclaim(self.config, now)
        nodes = self.ledger.owner_nodes(self.launch_tx_id, owner_pub_key_hash)
        if not nodes:
            raise NotFoundError(f"No nodes of {owner_pub_key_hash.hex()} in launch {self.launch_tx_id}")
        fail_proof = self.fail_proof()

        node_validator = self._carrier(LaunchUtxoType.NODE_VALIDATOR_REF_SCRIPT_CARRIER)
        node_policy = self._carrier(LaunchUtxoType.NODE_POLICY_REF_SCRIPT_CARRIER)

        return ProtocolAction(
            kind=ActionKind.RECLAIM_COMMITMENTS,
            validity=validity,
            script_inputs=[ScriptInput(node.utxo, ReclaimAfterFailure(), node_validator) for node in nodes],
            reference_inputs=[fail_proof],
            mints=[self._node_validity_token(-len(nodes), node_policy)],
            required_signers=[pc.VerificationKeyHash(owner_pub_key_hash)],
        )


class TransactionAssembler:
    """Balances, signs and submits protocol actions with pycardano"""

    def __init__(self, chain_context: CardanoChainContext, context: Optional[pc.ChainContext] = None):
        """
        Initialize assembler

        Args:
            chain_context: Network configuration, used for explorer links
            context: PyCardano chain context, defaults to the one of `chain_context`
        """
        self.chain_context = chain_context
        self.context = context or chain_context.get_context()

    def _wallet_utxo_with(self, wallet_address: pc.Address, unit: str) -> pc.UTxO:
        for utxo in self.context.utxos(wallet_address):
            if utxo_holds(utxo, unit):
                return utxo
        raise NotFoundError(f"Wallet {wallet_address} holds no {unit}")

    def to_builder(self, action: ProtocolAction, wallet_address: pc.Address) -> pc.TransactionBuilder:
        """
        Transaction builder carrying the action, funded from `wallet_address`

        The builder selects the wallet inputs, the collateral and computes
        the fee when built.
        """
        builder = pc.TransactionBuilder(self.context)

        for script_input in action.script_inputs:
            builder.add_script_input(
                script_input.utxo,
                script=script_input.carrier.utxo,
                redeemer=pc.Redeemer(script_input.redeemer),
            )

        for reference_input in action.reference_inputs:
            builder.reference_inputs.add(reference_input)

        if action.mints:
            builder.mint = action.mint
            # One redeemer per policy
            seen_policies = set()
            for entry in action.mints:
                if entry.policy_id in seen_policies:
                    continue
                seen_policies.add(entry.policy_id)
                builder.add_minting_script(script=entry.carrier.utxo, redeemer=pc.Redeemer(entry.redeemer))

        for output in action.outputs:
            builder.add_output(output)

        if action.required_signers:
            builder.required_signers = list(action.required_signers)

        builder.validity_start = action.validity.lower_slot
        builder.ttl = action.validity.upper_slot

        for unit in action.required_wallet_units:
            builder.add_input(self._wallet_utxo_with(wallet_address, unit))
        builder.add_input_address(wallet_address)
        return builder

    def build_and_sign(
        self,
        action: ProtocolAction,
        signing_keys: List[Union[pc.SigningKey, pc.ExtendedSigningKey]],
        wallet_address: pc.Address,
    ) -> pc.Transaction:
        """Balance the action and sign it, change goes back to the wallet"""
        builder = self.to_builder(action, wallet_address)
        return builder.build_and_sign(signing_keys, change_address=wallet_address)

    def submit(self, signed_tx: pc.Transaction) -> str:
        """
        Submit a signed transaction

        Returns:
            Transaction ID

        Raises:
            InputAlreadySpentError: If an input was consumed by another transaction
        """
        try:
            self.context.submit_tx(signed_tx)
        except (ApiError, pc.TransactionFailedException) as e:
            if "BadInputsUTxO" in str(e):
                raise InputAlreadySpentError(f"Transaction {signed_tx.id} spends a consumed input: {e}") from e
            raise

        tx_id = signed_tx.id.payload.hex()
        logger.info(f"Submitted transaction {tx_id}: {self.chain_context.get_explorer_url(tx_id)}")
        return tx_id
