"""
On-chain data types of the launchpad

Datums and redeemers as pycardano PlutusData dataclasses, laid out field by
field as the validators expect them. Decoding goes through datums.decode,
which also runs the optional `is_well_formed` check of each type.

Maybe values are encoded as constructor 0 [value] (Some) and constructor 1 []
(Nothing).
"""

from dataclasses import dataclass
from typing import List, Optional, Union

import pycardano as pc
from opshin.prelude import (
    Address,
    NoStakingCredential,
    PlutusData,
    PubKeyCredential,
    ScriptCredential,
    SomeStakingCredential,
    StakingHash,
)

from .config import LOVELACE_UNIT

HASH_LENGTH = 28
MAX_ASSET_NAME_LENGTH = 32


def is_hash(value: bytes) -> bool:
    return len(value) == HASH_LENGTH


def is_policy_id(value: bytes) -> bool:
    """Policy ids are script hashes, the empty policy stands for ada"""
    return len(value) in (0, HASH_LENGTH)


def is_asset_name(value: bytes) -> bool:
    return len(value) <= MAX_ASSET_NAME_LENGTH


def is_flag(value: int) -> bool:
    return value in (0, 1)


@dataclass()
class Nothing(PlutusData):
    CONSTR_ID = 1


# ============================================================================
# Commitment nodes
# ============================================================================


@dataclass()
class NodeKey(PlutusData):
    """Key of a commitment node: owner public key hash and per-owner index"""

    CONSTR_ID = 0
    pub_key_hash: bytes
    index: int

    def is_well_formed(self) -> bool:
        # Separator nodes carry keys shorter than a public key hash
        return 0 < len(self.pub_key_hash) <= HASH_LENGTH


@dataclass()
class SomeNodeKey(PlutusData):
    CONSTR_ID = 0
    value: NodeKey


MaybeNodeKey = Union[SomeNodeKey, Nothing]


@dataclass()
class SomeInt(PlutusData):
    CONSTR_ID = 0
    value: int


MaybeInt = Union[SomeInt, Nothing]


@dataclass()
class NodeDatum(PlutusData):
    """
    Datum of a commitment node

    The head node has no key. The last node has no next key.
    """

    CONSTR_ID = 0
    key: MaybeNodeKey
    next: MaybeNodeKey
    created_time: int
    committed: int


@dataclass()
class RefScriptCarrierDatum(PlutusData):
    """Datum of an output holding a reference script"""

    CONSTR_ID = 0
    owner_pub_key_hash: bytes
    deadline: int

    def is_well_formed(self) -> bool:
        return is_hash(self.owner_pub_key_hash)


# ============================================================================
# Folds
# ============================================================================


@dataclass()
class CommitFoldDatum(PlutusData):
    CONSTR_ID = 0
    node_script_hash: bytes
    next: MaybeNodeKey
    committed: int
    cutoff_key: MaybeNodeKey
    cutoff_time: MaybeInt
    overcommitted: int
    node_count: int
    owner: Address

    def is_well_formed(self) -> bool:
        return is_hash(self.node_script_hash)


@dataclass()
class RewardsFoldDatum(PlutusData):
    CONSTR_ID = 0
    node_script_hash: bytes
    next: MaybeNodeKey
    cutoff_key: MaybeNodeKey
    cutoff_time: MaybeInt
    committed: int
    overcommitted: int
    commit_fold_owner: bytes

    def is_well_formed(self) -> bool:
        return is_hash(self.node_script_hash)


@dataclass()
class RewardsHolderDatum(PlutusData):
    """Rewards of one contributor, created by the rewards fold"""

    CONSTR_ID = 0
    owner: NodeKey
    project_symbol: bytes
    project_token: bytes
    raising_symbol: bytes
    raising_token: bytes
    uses_wr: int
    uses_sundae: int
    end_time: int

    def is_well_formed(self) -> bool:
        return (
            is_policy_id(self.project_symbol)
            and is_asset_name(self.project_token)
            and is_policy_id(self.raising_symbol)
            and is_asset_name(self.raising_token)
            and is_flag(self.uses_wr)
            and is_flag(self.uses_sundae)
            # at least one DEX receives liquidity
            and (self.uses_wr == 1 or self.uses_sundae == 1)
        )


@dataclass()
class PoolProofDatum(PlutusData):
    CONSTR_ID = 0
    project_symbol: bytes
    project_token: bytes
    raising_symbol: bytes
    raising_token: bytes
    dex: int

    def is_well_formed(self) -> bool:
        return (
            is_policy_id(self.project_symbol)
            and is_asset_name(self.project_token)
            and is_policy_id(self.raising_symbol)
            and is_asset_name(self.raising_token)
            and is_flag(self.dex)
        )


# Fail proof and first tokens holder datums are bare script hashes
ScriptHashDatum = bytes


# ============================================================================
# DEX pools (read only)
# ============================================================================


@dataclass()
class SomePubKeyHash(PlutusData):
    CONSTR_ID = 0
    value: bytes

    def is_well_formed(self) -> bool:
        return is_hash(self.value)


MaybePubKeyHash = Union[SomePubKeyHash, Nothing]


@dataclass()
class Unused(PlutusData):
    CONSTR_ID = 0


@dataclass()
class WrPoolDatum(PlutusData):
    """State of a WingRiders V2 pool"""

    CONSTR_ID = 0
    request_validator_hash: bytes
    asset_a_symbol: bytes
    asset_a_token: bytes
    asset_b_symbol: bytes
    asset_b_token: bytes
    swap_fee_in_basis: int
    protocol_fee_in_basis: int
    project_fee_in_basis: int
    reserve_fee_in_basis: int
    fee_basis: int
    agent_fee_ada: int
    last_interaction: int
    treasury_a: int
    treasury_b: int
    project_treasury_a: int
    project_treasury_b: int
    reserve_treasury_a: int
    reserve_treasury_b: int
    project_beneficiary: MaybePubKeyHash
    reserve_beneficiary: MaybePubKeyHash
    unused: Unused

    def is_well_formed(self) -> bool:
        return (
            is_hash(self.request_validator_hash)
            and is_policy_id(self.asset_a_symbol)
            and is_asset_name(self.asset_a_token)
            and is_policy_id(self.asset_b_symbol)
            and is_asset_name(self.asset_b_token)
        )


@dataclass()
class MultisigSignature(PlutusData):
    CONSTR_ID = 0
    key_hash: bytes

    def is_well_formed(self) -> bool:
        return is_hash(self.key_hash)


@dataclass()
class MultisigAllOf(PlutusData):
    CONSTR_ID = 1
    scripts: List["MultisigScript"]


@dataclass()
class MultisigAnyOf(PlutusData):
    CONSTR_ID = 2
    scripts: List["MultisigScript"]


@dataclass()
class MultisigAtLeast(PlutusData):
    CONSTR_ID = 3
    required: int
    scripts: List["MultisigScript"]


@dataclass()
class MultisigBefore(PlutusData):
    CONSTR_ID = 4
    time: int


@dataclass()
class MultisigAfter(PlutusData):
    CONSTR_ID = 5
    time: int


@dataclass()
class MultisigScriptHash(PlutusData):
    CONSTR_ID = 6
    script_hash: bytes

    def is_well_formed(self) -> bool:
        return is_hash(self.script_hash)


MultisigScript = Union[
    MultisigSignature,
    MultisigAllOf,
    MultisigAnyOf,
    MultisigAtLeast,
    MultisigBefore,
    MultisigAfter,
    MultisigScriptHash,
]


@dataclass()
class SomeMultisigScript(PlutusData):
    CONSTR_ID = 0
    value: MultisigScript


MaybeMultisigScript = Union[SomeMultisigScript, Nothing]


def _unit(asset: List[bytes]) -> str:
    unit = asset[0] + asset[1]
    return unit.hex() if unit else LOVELACE_UNIT


@dataclass()
class SundaePoolDatum(PlutusData):
    """State of a SundaeSwap V3 pool"""

    CONSTR_ID = 0
    identifier: bytes
    # [[symbol A, token A], [symbol B, token B]]
    assets: List[List[bytes]]
    circulating_lp: int
    bid_fees_per_10_thousand: int
    ask_fees_per_10_thousand: int
    fee_manager: MaybeMultisigScript
    market_open: int
    protocol_fees: int

    def is_well_formed(self) -> bool:
        return (
            is_hash(self.identifier)
            and len(self.assets) == 2
            and all(
                len(asset) == 2 and is_policy_id(asset[0]) and is_asset_name(asset[1])
                for asset in self.assets
            )
        )

    @property
    def asset_a(self) -> str:
        return _unit(self.assets[0])

    @property
    def asset_b(self) -> str:
        return _unit(self.assets[1])


# ============================================================================
# Redeemers
# ============================================================================


# Node validator
@dataclass()
class InsertNode(PlutusData):
    """Insert a new node, `tier` is 0 for presale and 1 for default"""

    CONSTR_ID = 0
    tier: int

    def is_well_formed(self) -> bool:
        return is_flag(self.tier)


@dataclass()
class InsertSeparators(PlutusData):
    CONSTR_ID = 1
    offset: int


@dataclass()
class RemoveCurrentNode(PlutusData):
    CONSTR_ID = 2


@dataclass()
class RemoveNextNode(PlutusData):
    CONSTR_ID = 3


@dataclass()
class StartRewardsFold(PlutusData):
    CONSTR_ID = 4


@dataclass()
class FailLaunchpad(PlutusData):
    CONSTR_ID = 5


@dataclass()
class DelegateToRewardsFold(PlutusData):
    CONSTR_ID = 6
    fold_index: int


@dataclass()
class ReclaimAfterFailure(PlutusData):
    CONSTR_ID = 7


@dataclass()
class NodeEmergencyWithdrawal(PlutusData):
    CONSTR_ID = 8


NodeRedeemer = Union[
    InsertNode,
    InsertSeparators,
    RemoveCurrentNode,
    RemoveNextNode,
    StartRewardsFold,
    FailLaunchpad,
    DelegateToRewardsFold,
    ReclaimAfterFailure,
    NodeEmergencyWithdrawal,
]


# First project tokens holder validator
@dataclass()
class CancelLaunch(PlutusData):
    CONSTR_ID = 0


@dataclass()
class DelegateToRewardsOrFailure(PlutusData):
    CONSTR_ID = 1


TokensHolderFirstRedeemer = Union[CancelLaunch, DelegateToRewardsOrFailure]


# Commit fold validator
@dataclass()
class CommitFold(PlutusData):
    CONSTR_ID = 0
    nodes: List[int]


@dataclass()
class DelegateCommitToNode(PlutusData):
    CONSTR_ID = 1


@dataclass()
class CommitFoldEmergencyWithdrawal(PlutusData):
    CONSTR_ID = 2


CommitFoldRedeemer = Union[CommitFold, DelegateCommitToNode, CommitFoldEmergencyWithdrawal]


# Rewards fold validator
@dataclass()
class RewardsFold(PlutusData):
    CONSTR_ID = 0
    input_nodes: List[int]
    output_nodes: List[int]
    commit_fold_compensation_index: int
    input_rewards_fold_index: int
    input_tokens_holder_index: int
    dao_compensation_index: int
    owner_compensation_index: int


@dataclass()
class RewardsFoldEmergencyWithdrawal(PlutusData):
    CONSTR_ID = 1


RewardsFoldRedeemer = Union[RewardsFold, RewardsFoldEmergencyWithdrawal]


# ============================================================================
# Helpers
# ============================================================================


def maybe_node_key(key: Optional[NodeKey]) -> MaybeNodeKey:
    return Nothing() if key is None else SomeNodeKey(key)


def node_key_or_none(value: MaybeNodeKey) -> Optional[NodeKey]:
    return value.value if isinstance(value, SomeNodeKey) else None


def maybe_int(value: Optional[int]) -> MaybeInt:
    return Nothing() if value is None else SomeInt(value)


def address_to_plutus(address: pc.Address) -> Address:
    """
    Convert a pycardano address to its on-chain representation

    Pointer addresses are not used by the launchpad.
    """
    payment = address.payment_part
    if isinstance(payment, pc.ScriptHash):
        payment_credential = ScriptCredential(payment.payload)
    else:
        payment_credential = PubKeyCredential(payment.payload)

    staking = address.staking_part
    if isinstance(staking, pc.ScriptHash):
        staking_credential = SomeStakingCredential(StakingHash(ScriptCredential(staking.payload)))
    elif isinstance(staking, pc.VerificationKeyHash):
        staking_credential = SomeStakingCredential(StakingHash(PubKeyCredential(staking.payload)))
    else:
        staking_credential = NoStakingCredential()
    return Address(payment_credential, staking_credential)
