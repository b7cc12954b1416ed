"""
Tests for the BlockFrost indexer and its connection handle
"""

import pycardano as pc
import pytest
from blockfrost import ApiError

from launchpad_offchain.errors import IndexerUnavailableError, NotFoundError
from launchpad_offchain.indexer import BlockfrostIndexer, IndexerConnection
from launchpad_offchain.ref_scripts import LaunchUtxoType, RefScriptCarrierType, RefScriptLocator

from .conftest import LAUNCH_TX_ID
from .mocks import MockBlockfrostAPI, MockChainContext, api_error, make_utxo


class IndexerCommon:
    """Common setup: a deployed launch behind a mock BlockFrost"""

    @pytest.fixture(autouse=True)
    def setup_indexer(self, indexer, launch_scripts, settings):
        self.chain = indexer
        self.scripts = launch_scripts
        self.api = MockBlockfrostAPI()
        self.chain_context = MockChainContext(self.api, self.chain)
        self.connection = IndexerConnection(self.chain_context, max_reconnect_attempts=2, reconnect_backoff_s=0)
        self.indexer = BlockfrostIndexer(self.connection, settings.ref_script_carrier_validator_hash)
        self.indexer.register_launch(LAUNCH_TX_ID, launch_scripts)


class TestIndexerConnection(IndexerCommon):
    """Test reconnecting on transient failures"""

    def test_connects_lazily(self):
        assert self.chain_context.connects == 0
        assert self.indexer.tip_slot() == 1000
        assert self.chain_context.connects == 1

    def test_reconnects_on_server_errors(self):
        self.api.fail_next(api_error(500), api_error(429))
        assert self.indexer.tip_slot() == 1000
        assert self.chain_context.connects == 3

    def test_reconnects_on_network_errors(self):
        self.api.fail_next(ConnectionError("reset by peer"))
        assert self.indexer.tip_slot() == 1000

    def test_unavailable_after_attempts(self):
        self.api.fail_next(api_error(503), api_error(503), api_error(503))
        with pytest.raises(IndexerUnavailableError) as exc_info:
            self.indexer.tip_slot()
        assert exc_info.value.retryable
        assert self.api.calls == 3

    def test_client_errors_propagate(self):
        self.api.fail_next(api_error(403))
        with pytest.raises(ApiError):
            self.indexer.tip_slot()
        assert self.api.calls == 1

    def test_health_check(self):
        assert self.connection.health_check()
        self.api.set_healthy(False)
        assert not self.connection.health_check()

    def test_health_check_on_error(self):
        self.api.fail_next(api_error(500))
        assert not self.connection.health_check()


class TestBlockfrostIndexer(IndexerCommon):
    """Test the chain queries"""

    def test_utxos_at(self):
        address = self.scripts.address(RefScriptCarrierType.NODE_VALIDATOR, self.chain.network)
        assert self.indexer.utxos_at(address) == [self.chain.head]

    def test_utxo(self):
        head = self.chain.head
        tx_id = str(head.input.transaction_id)
        self.api.set_transaction_output(tx_id, head.input.index, head.output.address.encode())
        assert self.indexer.utxo(tx_id, head.input.index) == head

    def test_spent_utxo(self):
        head = self.chain.head
        tx_id = str(head.input.transaction_id)
        self.api.set_transaction_output(tx_id, head.input.index, head.output.address.encode())
        self.chain.spend(head)
        assert self.indexer.utxo(tx_id, head.input.index) is None

    def test_unknown_utxo(self):
        assert self.indexer.utxo("9" * 64, 0) is None

    def test_unknown_output_index(self):
        head = self.chain.head
        tx_id = str(head.input.transaction_id)
        self.api.set_transaction_output(tx_id, head.input.index, head.output.address.encode())
        assert self.indexer.utxo(tx_id, head.input.index + 1) is None

    def test_commitment_nodes(self):
        unit = self.scripts.node_validity_unit
        node_address = self.chain.head.output.address.encode()
        self.api.set_asset_addresses(unit, [node_address, node_address])
        # Other outputs at the node address are not nodes
        self.chain.add(make_utxo(self.chain.head.output.address, pc.Value(5_000_000)))

        assert self.indexer.commitment_nodes(LAUNCH_TX_ID) == [self.chain.head]

    def test_no_commitment_nodes(self):
        assert self.indexer.commitment_nodes(LAUNCH_TX_ID) == []

    def test_carriers_filtered_by_script(self):
        carrier_address = self.indexer.carrier_address
        self.chain.add(
            make_utxo(
                carrier_address,
                pc.Value(20_000_000),
                script=self.scripts[RefScriptCarrierType.NODE_POLICY].to_plutus_script(),
            )
        )
        carriers = self.indexer.ref_script_carriers(LAUNCH_TX_ID, RefScriptCarrierType.NODE_VALIDATOR)
        assert len(carriers) == 1
        assert carriers[0].output.script == self.scripts[RefScriptCarrierType.NODE_VALIDATOR].to_plutus_script()
        assert len(self.indexer.ref_script_carriers(LAUNCH_TX_ID, RefScriptCarrierType.NODE_POLICY)) == 2

    def test_mismatching_carrier_not_found(self):
        """Test that a carrier holding another script is never selected for a role"""
        node_validator_carrier = self.chain.carriers[(LAUNCH_TX_ID, RefScriptCarrierType.NODE_VALIDATOR)][0]
        self.chain.spend(node_validator_carrier)
        self.chain.add_carrier(
            LAUNCH_TX_ID,
            RefScriptCarrierType.NODE_VALIDATOR,
            self.scripts[RefScriptCarrierType.NODE_POLICY].to_plutus_script(),
            self.indexer.carrier_address,
        )
        locator = RefScriptLocator(self.indexer, {LAUNCH_TX_ID: self.scripts})
        with pytest.raises(NotFoundError):
            locator.locate(LAUNCH_TX_ID, LaunchUtxoType.NODE_VALIDATOR_REF_SCRIPT_CARRIER)

    def test_unregistered_launch(self):
        with pytest.raises(NotFoundError):
            self.indexer.commitment_nodes("2" * 64)

