"""Typed decoding of launchpad contract logs.

Raw `eth_getLogs` entries are decoded into a closed set of frozen dataclasses.
A log that does not match its declared shape raises `EventDecodeError`
instead of yielding partially populated values.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Literal

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from web3 import Web3

CAMPAIGN_CREATED_SIGNATURE = "CampaignCreated(address,address,address,string,string)"
TOKENS_PURCHASED_SIGNATURE = "TokensPurchased(address,uint256,uint256)"
TOKENS_SOLD_SIGNATURE = "TokensSold(address,uint256,uint256)"

CAMPAIGN_CREATED_TOPIC = Web3.to_hex(Web3.keccak(text=CAMPAIGN_CREATED_SIGNATURE))
TOKENS_PURCHASED_TOPIC = Web3.to_hex(Web3.keccak(text=TOKENS_PURCHASED_SIGNATURE))
TOKENS_SOLD_TOPIC = Web3.to_hex(Web3.keccak(text=TOKENS_SOLD_SIGNATURE))

TRADE_TOPICS = (TOKENS_PURCHASED_TOPIC, TOKENS_SOLD_TOPIC)

TradeSide = Literal["buy", "sell"]


class EventDecodeError(ValueError):
    """Raised when a log does not match the expected event shape."""


@dataclass(frozen=True)
class LogMeta:
    """Position of a log on chain; (tx_hash, log_index) identifies it."""

    address: str
    tx_hash: str
    log_index: int
    block_number: int


@dataclass(frozen=True)
class CampaignCreated:
    meta: LogMeta
    campaign: str
    token: str
    creator: str
    name: str
    symbol: str


@dataclass(frozen=True)
class TokensPurchased:
    meta: LogMeta
    wallet: str
    token_amount_out: int
    quote_cost: int

    side: ClassVar[TradeSide] = "buy"

    @property
    def token_amount_raw(self) -> int:
        return self.token_amount_out

    @property
    def quote_amount_raw(self) -> int:
        return self.quote_cost


@dataclass(frozen=True)
class TokensSold:
    meta: LogMeta
    wallet: str
    token_amount_in: int
    quote_payout: int

    side: ClassVar[TradeSide] = "sell"

    @property
    def token_amount_raw(self) -> int:
        return self.token_amount_in

    @property
    def quote_amount_raw(self) -> int:
        return self.quote_payout


TradeEvent = TokensPurchased | TokensSold
LaunchpadEvent = CampaignCreated | TokensPurchased | TokensSold


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        hexed = value[2:] if value.startswith(("0x", "0X")) else value
        try:
            return bytes.fromhex(hexed)
        except ValueError as e:
            raise EventDecodeError(f"Invalid hex value: {value!r}") from e
    raise EventDecodeError(f"Expected bytes or hex string, got {type(value).__name__}")


def _to_hex(value: Any) -> str:
    return "0x" + _to_bytes(value).hex()


def _topic_to_address(topic: Any) -> str:
    raw = _to_bytes(topic)
    if len(raw) != 32:
        raise EventDecodeError(f"Address topic must be 32 bytes, got {len(raw)}")
    return "0x" + raw[-20:].hex()


def _required(log: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = log.get(key)
        if value is not None:
            return value
    raise EventDecodeError(f"Log is missing required field {keys[0]!r}")


def log_meta(log: dict[str, Any]) -> LogMeta:
    """Extract the positional fields every decoded event carries."""
    try:
        return LogMeta(
            address=str(_required(log, "address")).lower(),
            tx_hash=_to_hex(_required(log, "transactionHash", "transaction_hash")).lower(),
            log_index=int(_required(log, "logIndex", "log_index")),
            block_number=int(_required(log, "blockNumber", "block_number")),
        )
    except EventDecodeError:
        raise
    except (TypeError, ValueError) as e:
        raise EventDecodeError(f"Malformed log position fields: {e}") from e


def topic0(log: dict[str, Any]) -> str:
    topics = log.get("topics") or []
    if not topics:
        raise EventDecodeError("Log has no topics")
    return _to_hex(topics[0]).lower()


def _indexed_address(log: dict[str, Any], position: int) -> str:
    topics = log.get("topics") or []
    if len(topics) <= position:
        raise EventDecodeError(f"Log has {len(topics)} topics; expected indexed topic {position}")
    return _topic_to_address(topics[position])


def _decode_data(types: list[str], log: dict[str, Any]) -> tuple[Any, ...]:
    try:
        return tuple(decode(types, _to_bytes(log.get("data") or b"")))
    except EventDecodeError:
        raise
    except (DecodingError, ValueError, TypeError) as e:
        raise EventDecodeError(f"Cannot decode log data as {types}: {e}") from e


def decode_log(log: dict[str, Any]) -> LaunchpadEvent:
    """Decode a raw log into its typed event.

    Raises:
        EventDecodeError: If the topic is unknown or any field does not match.
    """
    meta = log_meta(log)
    signature = topic0(log)

    if signature == CAMPAIGN_CREATED_TOPIC:
        name, symbol = _decode_data(["string", "string"], log)
        return CampaignCreated(
            meta=meta,
            campaign=_indexed_address(log, 1),
            token=_indexed_address(log, 2),
            creator=_indexed_address(log, 3),
            name=str(name),
            symbol=str(symbol),
        )

    if signature == TOKENS_PURCHASED_TOPIC:
        amount_out, cost = _decode_data(["uint256", "uint256"], log)
        return TokensPurchased(
            meta=meta,
            wallet=_indexed_address(log, 1),
            token_amount_out=int(amount_out),
            quote_cost=int(cost),
        )

    if signature == TOKENS_SOLD_TOPIC:
        amount_in, payout = _decode_data(["uint256", "uint256"], log)
        return TokensSold(
            meta=meta,
            wallet=_indexed_address(log, 1),
            token_amount_in=int(amount_in),
            quote_payout=int(payout),
        )

    raise EventDecodeError(f"Unknown event topic {signature} in tx {meta.tx_hash}")


def decode_trade_log(log: dict[str, Any]) -> TradeEvent:
    event = decode_log(log)
    if not isinstance(event, (TokensPurchased, TokensSold)):
        raise EventDecodeError(f"Expected a trade event, got {type(event).__name__}")
    return event


def decode_campaign_created_log(log: dict[str, Any]) -> CampaignCreated:
    event = decode_log(log)
    if not isinstance(event, CampaignCreated):
        raise EventDecodeError(f"Expected CampaignCreated, got {type(event).__name__}")
    return event
