"""
Tests for the datum codec
"""

import cbor2
import pycardano as pc
import pytest
from opshin.prelude import Address, NoStakingCredential, PubKeyCredential

from launchpad_offchain.datums import decode, decode_utxo, encode_datum, try_decode
from launchpad_offchain.enums import DecodeStatus
from launchpad_offchain.types import (
    CommitFoldDatum,
    InsertNode,
    MultisigAllOf,
    MultisigAtLeast,
    MultisigScript,
    MultisigSignature,
    NodeDatum,
    NodeKey,
    NodeRedeemer,
    Nothing,
    PoolProofDatum,
    RefScriptCarrierDatum,
    RemoveNextNode,
    RewardsHolderDatum,
    ScriptHashDatum,
    SomeInt,
    SomeNodeKey,
    SundaePoolDatum,
    WrPoolDatum,
    address_to_plutus,
    maybe_node_key,
)

WR_POOL_CBOR = (
    "d8799f581cc134d839a64a5dfb9b155869ef3f34280751a622f69958baa8ffd29c4040581cc0ee29a85b13209423b10447d3c2e6a5"
    "0641a15c57770e27cb9d50734a57696e67526964657273181e0500001927101a001e84801b0000019c03ae7d881a002d814d1a02bf"
    "1b1600000000d87a80d87a80d87980ff"
)
SUNDAE_POOL_CBOR = (
    "d8799f581c3e259cc410c7932ff0f579085cb47e882498f1af51f1d8db90bc14fc9f9f4040ff9f581ce5a42a1a1d3d1da71b044966"
    "3c32798725888d2eb0843c4dabeca05a51576f726c644d6f62696c65546f6b656e58ffff1b000000af7cf28a0f181e181ed87a8000"
    "1ac6866340ff"
)

PKH = bytes.fromhex("e" * 56)


class TestPoolDatums:
    """Test decoding pool datums taken from the chain"""

    def test_decode_wr_pool(self):
        datum = decode(WrPoolDatum, WR_POOL_CBOR)
        assert datum is not None
        assert datum.request_validator_hash.hex() == "c134d839a64a5dfb9b155869ef3f34280751a622f69958baa8ffd29c"
        assert datum.asset_a_symbol == b""
        assert datum.asset_b_token == b"WingRiders"
        assert datum.swap_fee_in_basis == 30
        assert datum.protocol_fee_in_basis == 5
        assert datum.fee_basis == 10_000
        assert datum.agent_fee_ada == 2_000_000
        assert datum.last_interaction == 1769588293000
        assert datum.treasury_a == 2982221
        assert datum.treasury_b == 46078742
        assert isinstance(datum.project_beneficiary, Nothing)

    def test_decode_sundae_pool(self):
        datum = decode(SundaePoolDatum, SUNDAE_POOL_CBOR)
        assert datum is not None
        assert datum.identifier.hex() == "3e259cc410c7932ff0f579085cb47e882498f1af51f1d8db90bc14fc"
        assert datum.asset_a == "lovelace"
        assert datum.asset_b == (
            "e5a42a1a1d3d1da71b0449663c32798725888d2eb0843c4dabeca05a576f726c644d6f62696c65546f6b656e58"
        )
        assert datum.circulating_lp == 753715546639
        assert datum.bid_fees_per_10_thousand == 30
        assert datum.ask_fees_per_10_thousand == 30
        assert isinstance(datum.fee_manager, Nothing)
        assert datum.market_open == 0
        assert datum.protocol_fees == 3330696000

    @pytest.mark.parametrize("schema, cbor_hex", [(WrPoolDatum, WR_POOL_CBOR), (SundaePoolDatum, SUNDAE_POOL_CBOR)])
    def test_round_trip(self, schema, cbor_hex):
        """Test decode, encode, decode gives the same value"""
        datum = decode(schema, cbor_hex)
        assert decode(schema, encode_datum(datum)) == datum

    def test_pool_datums_do_not_cross_match(self):
        assert decode(SundaePoolDatum, WR_POOL_CBOR) is None
        assert decode(WrPoolDatum, SUNDAE_POOL_CBOR) is None


class TestDecodeFailures:
    """Test that every kind of bad input collapses to None"""

    def test_truncated_cbor(self):
        assert decode(WrPoolDatum, WR_POOL_CBOR[:-10]) is None
        assert try_decode(WrPoolDatum, WR_POOL_CBOR[:-10]).status is DecodeStatus.ERROR

    def test_not_hex(self):
        assert try_decode(NodeDatum, "not hex").status is DecodeStatus.ERROR

    def test_missing_datum(self):
        result = try_decode(NodeDatum, None)
        assert result.status is DecodeStatus.ERROR
        assert result.value is None

    def test_wrong_constructor(self):
        wrong = cbor2.dumps(cbor2.CBORTag(122, [b"\x00" * 28, 0]))
        assert try_decode(RefScriptCarrierDatum, wrong).status is DecodeStatus.NO_MATCH
        assert decode(RefScriptCarrierDatum, wrong) is None

    def test_wrong_arity(self):
        assert decode(RefScriptCarrierDatum, cbor2.dumps(cbor2.CBORTag(121, [PKH]))) is None

    def test_type_mismatch(self):
        assert decode(RefScriptCarrierDatum, cbor2.dumps(cbor2.CBORTag(121, [1, 2]))) is None
        assert decode(RefScriptCarrierDatum, cbor2.dumps(cbor2.CBORTag(121, [PKH, b"later"]))) is None

    def test_negative_amount(self):
        datum = NodeDatum(key=Nothing(), next=Nothing(), created_time=0, committed=-1)
        assert decode(NodeDatum, datum.to_cbor()) is None

    @pytest.mark.parametrize("cbor_hex", ["d82301", "d81e820100"])
    def test_semantic_tag_with_bad_content(self, cbor_hex):
        """Test that tags cbor2 turns into Python objects cannot escape as exceptions"""
        assert decode(NodeDatum, cbor_hex) is None
        assert try_decode(NodeDatum, cbor_hex).status is DecodeStatus.ERROR

    @pytest.mark.parametrize("pub_key_hash", [b"", b"\x01" * 29])
    def test_node_key_length(self, pub_key_hash):
        datum = NodeDatum(key=maybe_node_key(NodeKey(pub_key_hash, 0)), next=Nothing(), created_time=0, committed=0)
        assert try_decode(NodeDatum, datum.to_cbor()).status is DecodeStatus.NO_MATCH

    def test_wrong_hash_length(self):
        datum = RefScriptCarrierDatum(owner_pub_key_hash=b"\x01" * 27, deadline=0)
        assert decode(RefScriptCarrierDatum, datum.to_cbor()) is None

    def test_flag_out_of_range(self):
        proof = PoolProofDatum(b"", b"", b"\x01" * 28, b"TOKEN", 2)
        assert decode(PoolProofDatum, proof.to_cbor()) is None

    def test_rewards_holder_needs_a_dex(self):
        holder = RewardsHolderDatum(NodeKey(PKH, 0), b"\x01" * 28, b"P", b"", b"", 0, 0, 1)
        assert decode(RewardsHolderDatum, holder.to_cbor()) is None
        holder.uses_sundae = 1
        assert decode(RewardsHolderDatum, holder.to_cbor()) == holder


class TestLaunchDatums:
    """Test decoding the launchpad's own datums"""

    def test_node_datum(self):
        datum = NodeDatum(
            key=maybe_node_key(NodeKey(PKH, 3)),
            next=Nothing(),
            created_time=1_700_000_000_000,
            committed=10**30,
        )
        decoded = decode(NodeDatum, datum.to_cbor_hex())
        assert decoded == datum
        assert isinstance(decoded.key, SomeNodeKey)
        assert decoded.key.value.index == 3
        assert decoded.committed == 10**30

    def test_separator_node_datum(self):
        datum = NodeDatum(
            key=maybe_node_key(NodeKey(bytes.fromhex("8000"), 0)), next=Nothing(), created_time=0, committed=0
        )
        assert decode(NodeDatum, datum.to_cbor()) == datum

    def test_head_node_datum(self):
        datum = NodeDatum(key=Nothing(), next=Nothing(), created_time=0, committed=0)
        assert decode(NodeDatum, datum.to_cbor()) == datum

    def test_script_hash_datum(self):
        assert decode(ScriptHashDatum, cbor2.dumps(PKH)) == PKH

    def test_commit_fold_datum_with_address(self):
        datum = CommitFoldDatum(
            node_script_hash=b"\x02" * 28,
            next=maybe_node_key(NodeKey(PKH, 0)),
            committed=5,
            cutoff_key=Nothing(),
            cutoff_time=SomeInt(1_700_000_000_000),
            overcommitted=0,
            node_count=1,
            owner=Address(PubKeyCredential(PKH), NoStakingCredential()),
        )
        assert decode(CommitFoldDatum, datum.to_cbor()) == datum

    def test_decode_utxo(self):
        datum = RefScriptCarrierDatum(owner_pub_key_hash=PKH, deadline=5)
        address = pc.Address(payment_part=pc.ScriptHash(b"\x03" * 28), network=pc.Network.TESTNET)
        utxo = pc.UTxO(
            pc.TransactionInput(pc.TransactionId(b"\x00" * 32), 0),
            pc.TransactionOutput(address, pc.Value(2_000_000), datum=pc.RawPlutusData(cbor2.loads(datum.to_cbor()))),
        )
        assert decode_utxo(RefScriptCarrierDatum, utxo) == datum

    def test_decode_utxo_bytestring_datum(self):
        """Test that a bytes datum on an output is a Plutus bytestring, not CBOR"""
        address = pc.Address(payment_part=pc.ScriptHash(b"\x03" * 28), network=pc.Network.TESTNET)
        utxo = pc.UTxO(
            pc.TransactionInput(pc.TransactionId(b"\x00" * 32), 0),
            pc.TransactionOutput(address, pc.Value(2_000_000), datum=PKH),
        )
        assert decode_utxo(ScriptHashDatum, utxo) == PKH
        assert decode_utxo(NodeDatum, utxo) is None

    def test_multisig_script(self):
        script = MultisigAtLeast(1, [MultisigSignature(PKH), MultisigAllOf([])])
        assert decode(MultisigScript, script.to_cbor()) == script


class TestRedeemers:
    """Test encoding and decoding redeemers"""

    def test_node_redeemer_variants(self):
        assert decode(NodeRedeemer, InsertNode(1).to_cbor()) == InsertNode(1)
        assert decode(NodeRedeemer, RemoveNextNode().to_cbor()) == RemoveNextNode()

    def test_insert_node_tier_flag(self):
        assert decode(NodeRedeemer, InsertNode(2).to_cbor()) is None

    def test_encode_datum(self):
        assert encode_datum(InsertNode(0)) == bytes.fromhex("d8799f00ff")
        assert encode_datum(PKH) == cbor2.dumps(PKH)
        with pytest.raises(TypeError):
            encode_datum("text")


class TestAddressConversion:
    def test_base_address(self):
        address = pc.Address(
            payment_part=pc.VerificationKeyHash(PKH),
            staking_part=pc.VerificationKeyHash(b"\x05" * 28),
            network=pc.Network.TESTNET,
        )
        plutus_address = address_to_plutus(address)
        assert plutus_address.payment_credential.credential_hash == PKH
        assert plutus_address.staking_credential.staking_credential.value.credential_hash == b"\x05" * 28

    def test_script_enterprise_address(self):
        address = pc.Address(payment_part=pc.ScriptHash(b"\x03" * 28), network=pc.Network.TESTNET)
        plutus_address = address_to_plutus(address)
        assert plutus_address.payment_credential.credential_hash == b"\x03" * 28
        assert isinstance(plutus_address.staking_credential, NoStakingCredential)
