"""
Chain Indexer

Read access to the chain state the launchpad needs. `Indexer` is the
interface the protocol core depends on; `BlockfrostIndexer` implements it on
top of BlockFrost through an explicit connection handle.
"""

import logging
import time
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Protocol, TypeVar

import pycardano as pc
from blockfrost import ApiError, BlockFrostApi

from .chain_context import CardanoChainContext
from .errors import IndexerUnavailableError, NotFoundError

if TYPE_CHECKING:
    from .ref_scripts import LaunchScripts, RefScriptCarrierType

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Indexer(Protocol):
    """Chain queries used by the protocol core. Every call reads fresh state."""

    def utxos_at(self, address: pc.Address) -> List[pc.UTxO]:
        """Unspent outputs at an address"""
        ...

    def utxo(self, tx_id: str, index: int) -> Optional[pc.UTxO]:
        """The output if it exists and is unspent, else None"""
        ...

    def ref_script_carriers(self, launch_tx_id: str, carrier_type: "RefScriptCarrierType") -> List[pc.UTxO]:
        """Unspent reference script carriers of one role of a launch"""
        ...

    def commitment_nodes(self, launch_tx_id: str) -> List[pc.UTxO]:
        """Unspent commitment nodes of a launch, the head node included"""
        ...

    def tip_slot(self) -> int:
        """Slot of the latest block"""
        ...


class IndexerConnection:
    """
    Connection handle to BlockFrost owned by one indexer

    Calls go through `execute`, which reconnects on transport and server
    errors up to `max_reconnect_attempts` times before giving up.
    """

    def __init__(
        self,
        chain_context: CardanoChainContext,
        max_reconnect_attempts: int = 3,
        reconnect_backoff_s: float = 1.0,
    ):
        """
        Initialize connection handle

        Args:
            chain_context: Network configuration and BlockFrost credentials
            max_reconnect_attempts: Reconnects tried before failing a call
            reconnect_backoff_s: Base delay between reconnects, grows linearly
        """
        self.chain_context = chain_context
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_backoff_s = reconnect_backoff_s
        self._api: Optional[BlockFrostApi] = None
        self._context: Optional[pc.ChainContext] = None

    def connect(self) -> None:
        self._api = self.chain_context.create_api()
        self._context = self.chain_context.create_context()

    def close(self) -> None:
        self._api = None
        self._context = None

    @property
    def api(self) -> BlockFrostApi:
        if self._api is None:
            self.connect()
        return self._api

    @property
    def context(self) -> pc.ChainContext:
        if self._context is None:
            self.connect()
        return self._context

    def health_check(self) -> bool:
        """True if BlockFrost answers and reports itself healthy"""
        try:
            return bool(self.api.health().is_healthy)
        except (ApiError, OSError) as e:
            logger.warning(f"Indexer health check failed: {e}")
            return False

    @staticmethod
    def _is_transient(error: Exception) -> bool:
        if isinstance(error, ApiError):
            return error.status_code == 429 or error.status_code >= 500
        return isinstance(error, OSError)

    def execute(self, operation: Callable[[BlockFrostApi, pc.ChainContext], T], description: str) -> T:
        """
        Run a query, reconnecting on transient failures

        Raises:
            IndexerUnavailableError: If the query keeps failing after all reconnects
        """
        attempt = 0
        while True:
            try:
                return operation(self.api, self.context)
            except (ApiError, OSError) as e:
                if not self._is_transient(e):
                    raise
                attempt += 1
                if attempt > self.max_reconnect_attempts:
                    raise IndexerUnavailableError(
                        f"{description} failed after {self.max_reconnect_attempts} reconnect attempts: {e}"
                    ) from e
                logger.warning(
                    f"{description} failed ({e}), reconnecting ({attempt}/{self.max_reconnect_attempts})"
                )
                time.sleep(self.reconnect_backoff_s * attempt)
                self.close()
                self.connect()


class BlockfrostIndexer:
    """Indexer backed by BlockFrost"""

    def __init__(self, connection: IndexerConnection, ref_script_carrier_validator_hash: str):
        """
        Initialize indexer

        Args:
            connection: Connection handle, owned by this indexer
            ref_script_carrier_validator_hash: Validator all carriers are locked by
        """
        self.connection = connection
        self.network = connection.chain_context.cardano_network
        self.carrier_address = pc.Address(
            payment_part=pc.ScriptHash(bytes.fromhex(ref_script_carrier_validator_hash)), network=self.network
        )
        self._launches: Dict[str, "LaunchScripts"] = {}

    def register_launch(self, launch_tx_id: str, scripts: "LaunchScripts") -> None:
        """Make the scripts of a launch known, needed to find its carriers and nodes"""
        self._launches[launch_tx_id] = scripts

    def _scripts(self, launch_tx_id: str) -> "LaunchScripts":
        scripts = self._launches.get(launch_tx_id)
        if scripts is None:
            raise NotFoundError(f"Launch {launch_tx_id} is not registered with the indexer")
        return scripts

    def utxos_at(self, address: pc.Address) -> List[pc.UTxO]:
        return self.connection.execute(lambda api, context: context.utxos(address), f"utxos at {address}")

    def utxo(self, tx_id: str, index: int) -> Optional[pc.UTxO]:
        def query(api: BlockFrostApi, context: pc.ChainContext) -> Optional[pc.UTxO]:
            try:
                outputs = api.transaction_utxos(tx_id).outputs
            except ApiError as e:
                if e.status_code == 404:
                    return None
                raise
            output = next((o for o in outputs if o.output_index == index), None)
            if output is None:
                return None
            for utxo in context.utxos(output.address):
                if str(utxo.input.transaction_id) == tx_id and utxo.input.index == index:
                    return utxo
            # Spent
            return None

        return self.connection.execute(query, f"utxo {tx_id}#{index}")

    def ref_script_carriers(self, launch_tx_id: str, carrier_type: "RefScriptCarrierType") -> List[pc.UTxO]:
        expected_hash = self._scripts(launch_tx_id).hash(carrier_type)
        carriers = []
        for utxo in self.utxos_at(self.carrier_address):
            script = utxo.output.script
            if script is None or isinstance(script, pc.NativeScript):
                continue
            if pc.plutus_script_hash(script).payload == expected_hash:
                carriers.append(utxo)
        return carriers

    def commitment_nodes(self, launch_tx_id: str) -> List[pc.UTxO]:
        unit = self._scripts(launch_tx_id).node_validity_unit
        policy_id = pc.ScriptHash(bytes.fromhex(unit[:56]))
        asset_name = pc.AssetName(bytes.fromhex(unit[56:]))

        def query(api: BlockFrostApi, context: pc.ChainContext) -> List[str]:
            try:
                holders = api.asset_addresses(unit, gather_pages=True)
            except ApiError as e:
                if e.status_code == 404:
                    return []
                raise
            return sorted({h.address for h in holders})

        nodes = []
        for address in self.connection.execute(query, f"holders of {unit}"):
            for utxo in self.utxos_at(pc.Address.from_primitive(address)):
                if utxo.output.amount.multi_asset.get(policy_id, {}).get(asset_name, 0) > 0:
                    nodes.append(utxo)
        logger.debug(f"Found {len(nodes)} commitment nodes of launch {launch_tx_id}")
        return nodes

    def tip_slot(self) -> int:
        return self.connection.execute(lambda api, context: api.block_latest().slot, "latest block")
