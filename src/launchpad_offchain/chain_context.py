"""
Cardano Chain Context Management

Network configuration, slot/time conversion and blockchain connection setup.
"""

from dataclasses import dataclass
from typing import Optional

import pycardano as pc
from blockfrost import ApiUrls, BlockFrostApi

from .enums import NetworkType


@dataclass(frozen=True)
class SlotConfig:
    """
    Ledger slot/time model of a network

    Attributes:
        zero_time: POSIX time (ms) at which `zero_slot` began
        zero_slot: first slot of the current slot length era
        slot_length: length of a slot in ms
    """

    zero_time: int
    zero_slot: int
    slot_length: int

    def unix_time_to_enclosing_slot(self, unix_time: int) -> int:
        """Slot containing the given POSIX time (ms)"""
        return (unix_time - self.zero_time) // self.slot_length + self.zero_slot

    def slot_to_begin_unix_time(self, slot: int) -> int:
        """POSIX time (ms) at which the given slot begins"""
        return self.zero_time + (slot - self.zero_slot) * self.slot_length


SLOT_CONFIGS = {
    NetworkType.MAINNET: SlotConfig(zero_time=1596059091000, zero_slot=4492800, slot_length=1000),
    NetworkType.PREPROD: SlotConfig(zero_time=1655769600000, zero_slot=86400, slot_length=1000),
    NetworkType.PREVIEW: SlotConfig(zero_time=1666656000000, zero_slot=0, slot_length=1000),
}

_BLOCKFROST_URLS = {
    NetworkType.MAINNET: ApiUrls.mainnet.value,
    NetworkType.PREPROD: ApiUrls.preprod.value,
    NetworkType.PREVIEW: ApiUrls.preview.value,
}

_CARDANOSCAN_URLS = {
    NetworkType.MAINNET: "https://cardanoscan.io",
    NetworkType.PREPROD: "https://preprod.cardanoscan.io",
    NetworkType.PREVIEW: "https://preview.cardanoscan.io",
}


class CardanoChainContext:
    """Manages Cardano chain context and network configuration"""

    def __init__(self, network: NetworkType = NetworkType.PREPROD, blockfrost_api_key: Optional[str] = None):
        """
        Initialize chain context

        Args:
            network: Network the launch lives on
            blockfrost_api_key: BlockFrost API key for chain queries
        """
        self.network = NetworkType(network)
        self.blockfrost_api_key = blockfrost_api_key

        self.base_url = _BLOCKFROST_URLS[self.network]
        self.cardano_network = pc.Network.MAINNET if self.network.is_mainnet else pc.Network.TESTNET
        self.cardanoscan = _CARDANOSCAN_URLS[self.network]
        self.slot_config = SLOT_CONFIGS[self.network]

        # Chain context is created on first use so offline callers need no key
        self._context: Optional[pc.ChainContext] = None

    def create_context(self) -> pc.ChainContext:
        """
        Create PyCardano chain context

        Returns:
            PyCardano chain context for transaction operations
        """
        if not self.blockfrost_api_key:
            raise ValueError("BlockFrost API key required for chain context")

        return pc.BlockFrostChainContext(project_id=self.blockfrost_api_key, base_url=self.base_url)

    def get_context(self) -> pc.ChainContext:
        """Get the chain context"""
        if self._context is None:
            self._context = self.create_context()
        return self._context

    def create_api(self) -> BlockFrostApi:
        """Create a new BlockFrost API client for this network"""
        if not self.blockfrost_api_key:
            raise ValueError("BlockFrost API key required for API client")
        return BlockFrostApi(project_id=self.blockfrost_api_key, base_url=self.base_url)

    def get_explorer_url(self, tx_id: str) -> str:
        """
        Get explorer URL for transaction

        Args:
            tx_id: Transaction ID

        Returns:
            Explorer URL for the transaction
        """
        return f"{self.cardanoscan}/transaction/{tx_id}"
