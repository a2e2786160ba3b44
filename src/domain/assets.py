from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Protocol

FIAT_SYMBOLS = frozenset({"EUR", "USD", "CHF", "GBP", "JPY", "AUD", "CAD", "CNY"})


@dataclass(frozen=True)
class AssetMetadata:
    symbol: str
    name: str
    explorer_base_url: str | None = None
    coingecko_id: str | None = None


class AssetCatalog(Protocol):
    def lookup(self, symbol: str | None) -> AssetMetadata | None: ...

    def explorer_url(self, symbol: str | None, tx_id: str | None) -> str | None: ...


def _asset(symbol: str, name: str, explorer: str | None, coingecko_id: str) -> AssetMetadata:
    return AssetMetadata(symbol=symbol, name=name, explorer_base_url=explorer, coingecko_id=coingecko_id)


DEFAULT_ASSETS: tuple[AssetMetadata, ...] = (
    _asset("IOTA", "IOTA", "https://explorer.iota.org/txblock/", "iota"),
    _asset("BTC", "Bitcoin", "https://mempool.space/tx/", "bitcoin"),
    _asset("ETH", "Ethereum", "https://etherscan.io/tx/", "ethereum"),
    _asset("USDT", "Tether", "https://etherscan.io/tx/", "tether"),
    _asset("USDC", "USD Coin", "https://etherscan.io/tx/", "usd-coin"),
    _asset("BNB", "BNB", "https://bscscan.com/tx/", "binancecoin"),
    _asset("XRP", "XRP", "https://livenet.xrpl.org/transactions/", "ripple"),
    _asset("ADA", "Cardano", "https://cardanoscan.io/transaction/", "cardano"),
    _asset("SOL", "Solana", "https://solscan.io/tx/", "solana"),
    _asset("DOGE", "Dogecoin", "https://dogechain.info/tx/", "dogecoin"),
    _asset("TRX", "TRON", "https://tronscan.org/#/transaction/", "tron"),
    _asset("DOT", "Polkadot", "https://polkascan.io/polkadot/transaction/", "polkadot"),
    _asset("MATIC", "Polygon", "https://polygonscan.com/tx/", "matic-network"),
    _asset("LTC", "Litecoin", "https://blockchair.com/litecoin/transaction/", "litecoin"),
    _asset("SHIB", "Shiba Inu", "https://etherscan.io/tx/", "shiba-inu"),
    _asset("AVAX", "Avalanche", "https://snowtrace.io/tx/", "avalanche-2"),
    _asset("LINK", "Chainlink", "https://etherscan.io/tx/", "chainlink"),
    _asset("XLM", "Stellar", "https://stellarchain.io/tx/", "stellar"),
    _asset("UNI", "Uniswap", "https://etherscan.io/tx/", "uniswap"),
    _asset("XMR", "Monero", None, "monero"),
    _asset("ETC", "Ethereum Classic", "https://etcblockexplorer.com/tx/", "ethereum-classic"),
    _asset("BCH", "Bitcoin Cash", "https://blockchair.com/bitcoin-cash/transaction/", "bitcoin-cash"),
    _asset("ATOM", "Cosmos Hub", "https://www.mintscan.io/cosmos/txs/", "cosmos"),
    _asset("OP", "Optimism", "https://optimistic.etherscan.io/tx/", "optimism"),
    _asset("ARB", "Arbitrum", "https://arbiscan.io/tx/", "arbitrum"),
    _asset("AAVE", "Aave", "https://etherscan.io/tx/", "aave"),
    _asset("SAND", "The Sandbox", "https://etherscan.io/tx/", "the-sandbox"),
    _asset("MANA", "Decentraland", "https://etherscan.io/tx/", "decentraland"),
    _asset("GRT", "The Graph", "https://etherscan.io/tx/", "the-graph"),
    _asset("RUNE", "THORChain", "https://viewblock.io/thorchain/tx/", "thorchain"),
    _asset("STX", "Stacks", "https://explorer.hiro.so/txid/", "stacks"),
    _asset("INJ", "Injective", "https://www.mintscan.io/injective/txs/", "injective-protocol"),
    _asset("SUI", "Sui", "https://explorer.sui.io/tx/", "sui"),
    _asset("TON", "Toncoin", "https://tonviewer.com/transaction/", "toncoin"),
    _asset("CRO", "Cronos", "https://cronoscan.com/tx/", "crypto-com-chain"),
)


class StaticAssetCatalog(AssetCatalog):
    """Read-only catalog of supported assets, looked up by symbol or full name."""

    def __init__(self, assets: tuple[AssetMetadata, ...] = DEFAULT_ASSETS) -> None:
        self._by_symbol: Mapping[str, AssetMetadata] = {asset.symbol.upper(): asset for asset in assets}
        self._by_name: Mapping[str, AssetMetadata] = {asset.name.upper(): asset for asset in assets}

    def lookup(self, symbol: str | None) -> AssetMetadata | None:
        if not symbol:
            return None
        key = symbol.strip().upper()
        return self._by_symbol.get(key) or self._by_name.get(key)

    def normalize_symbol(self, value: str | None) -> str | None:
        if not value:
            return None
        meta = self.lookup(value)
        return meta.symbol if meta is not None else value.strip()

    def explorer_url(self, symbol: str | None, tx_id: str | None) -> str | None:
        if not symbol or not tx_id:
            return None
        meta = self.lookup(symbol)
        if meta is None or meta.explorer_base_url is None:
            return None
        return f"{meta.explorer_base_url}{tx_id}"

    def coingecko_id(self, symbol: str | None) -> str | None:
        meta = self.lookup(symbol)
        return meta.coingecko_id if meta is not None else None


__all__ = ["FIAT_SYMBOLS", "AssetCatalog", "AssetMetadata", "DEFAULT_ASSETS", "StaticAssetCatalog"]
