"""
Data model shared by the transaction builder, signing coordinator and relay router
"""

from dataclasses import asdict, dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional

from hexbytes import HexBytes

from config import ZERO_ADDRESS
from exceptions import ConfigurationError


class Operation(IntEnum):
    CALL = 0
    DELEGATE_CALL = 1


@dataclass
class MetaTransaction:
    """A raw call requested by the caller"""
    to: str
    value: int = 0
    data: str = "0x"
    operation: int = Operation.CALL


@dataclass(frozen=True)
class FeeRefundTerms:
    """Refund fields passed to execTransaction next to the primary call"""
    base_gas: int = 0
    gas_price: int = 0
    token_gas_price_factor: int = 0
    gas_token: str = ZERO_ADDRESS
    refund_receiver: str = ZERO_ADDRESS

    def as_tuple(self) -> tuple:
        return (self.base_gas, self.gas_price, self.token_gas_price_factor,
                self.gas_token, self.refund_receiver)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "baseGas": self.base_gas,
            "gasPrice": self.gas_price,
            "tokenGasPriceFactor": self.token_gas_price_factor,
            "gasToken": self.gas_token,
            "refundReceiver": self.refund_receiver,
        }


@dataclass(frozen=True)
class FeeQuote:
    """A priced refund option offered by the relayer"""
    symbol: str
    token_address: str
    decimal: int
    token_gas_price: int
    offset: int = 1
    refund_receiver: str = ZERO_ADDRESS
    logo_url: str = ""
    target_tx_gas: int = 0
    base_gas: int = 0

    def refund_terms(self) -> FeeRefundTerms:
        return FeeRefundTerms(
            base_gas=self.base_gas,
            gas_price=self.token_gas_price,
            token_gas_price_factor=self.offset,
            gas_token=self.token_address,
            refund_receiver=self.refund_receiver,
        )

    @classmethod
    def from_option(cls, option: Dict, target_tx_gas: int = 0, base_gas: int = 0) -> "FeeQuote":
        return cls(
            symbol=option["symbol"],
            token_address=option["address"],
            decimal=int(option.get("decimal", 18)),
            token_gas_price=int(option["tokenGasPrice"]),
            offset=int(option.get("offset") or 1),
            refund_receiver=option.get("refundReceiver") or ZERO_ADDRESS,
            logo_url=option.get("logoUrl", ""),
            target_tx_gas=target_tx_gas,
            base_gas=base_gas,
        )


@dataclass(frozen=True)
class WalletTransaction:
    """Canonical signable transaction executed by the smart account"""
    to: str
    value: int
    data: str
    operation: int
    target_tx_gas: int
    base_gas: int
    gas_price: int
    token_gas_price_factor: int
    gas_token: str
    refund_receiver: str
    nonce: int
    chain_id: int
    version: str

    @property
    def is_refund(self) -> bool:
        return self.gas_price > 0 or self.gas_token != ZERO_ADDRESS

    def refund_terms(self) -> FeeRefundTerms:
        return FeeRefundTerms(
            base_gas=self.base_gas,
            gas_price=self.gas_price,
            token_gas_price_factor=self.token_gas_price_factor,
            gas_token=self.gas_token,
            refund_receiver=self.refund_receiver,
        )

    def exec_tuple(self) -> tuple:
        return (self.to, self.value, bytes(HexBytes(self.data)), self.operation, self.target_tx_gas)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "to": self.to,
            "value": self.value,
            "data": self.data,
            "operation": self.operation,
            "targetTxGas": self.target_tx_gas,
            **self.refund_terms().to_dict(),
            "nonce": self.nonce,
            "chainId": self.chain_id,
            "version": self.version,
        }


@dataclass(frozen=True)
class ContractAddress:
    version: str
    address: str


@dataclass
class ChainConfig:
    """Per-chain deployment metadata served by the account directory"""
    chain_id: int
    name: str
    provider_url: str
    wallet: List[ContractAddress] = field(default_factory=list)
    wallet_factory: List[ContractAddress] = field(default_factory=list)
    multi_send: List[ContractAddress] = field(default_factory=list)
    multi_send_call: List[ContractAddress] = field(default_factory=list)
    fallback_handler: List[ContractAddress] = field(default_factory=list)
    entry_point: List[ContractAddress] = field(default_factory=list)
    fallback_gas_tank: List[ContractAddress] = field(default_factory=list)

    def latest(self, kind: str) -> str:
        entries = getattr(self, kind)
        if not entries:
            raise ConfigurationError(f"No {kind} deployment on chain {self.chain_id}")
        return entries[-1].address

    def address_for(self, kind: str, version: str) -> str:
        for entry in getattr(self, kind):
            if entry.version == version:
                return entry.address
        raise ConfigurationError(f"No {kind} deployment for version {version} on chain {self.chain_id}")

    @classmethod
    def from_dict(cls, raw: Dict) -> "ChainConfig":
        def addresses(key):
            return [ContractAddress(version=item["version"], address=item["address"])
                    for item in raw.get(key) or []]

        return cls(
            chain_id=int(raw["chainId"]),
            name=raw.get("name", ""),
            provider_url=raw.get("providerUrl", ""),
            wallet=addresses("wallet"),
            wallet_factory=addresses("walletFactory"),
            multi_send=addresses("multiSend"),
            multi_send_call=addresses("multiSendCall"),
            fallback_handler=addresses("fallBackHandler"),
            entry_point=addresses("entryPoint"),
            fallback_gas_tank=addresses("fallBackGasTankAddress"),
        )


@dataclass(frozen=True)
class WalletInfo:
    """Counterfactual wallet resolution returned by the account directory"""
    smart_account_address: str
    version: str
    is_deployed: bool
    implementation_address: str
    fallback_handler_address: str
    factory_address: str
    entry_point_address: str

    @classmethod
    def from_dict(cls, raw: Dict) -> "WalletInfo":
        return cls(
            smart_account_address=raw["smartAccountAddress"],
            version=raw.get("version", ""),
            is_deployed=bool(raw.get("isDeployed")),
            implementation_address=raw.get("implementationAddress") or ZERO_ADDRESS,
            fallback_handler_address=raw.get("fallBackHandlerAddress") or ZERO_ADDRESS,
            factory_address=raw.get("factoryAddress") or ZERO_ADDRESS,
            entry_point_address=raw.get("entryPointAddress") or ZERO_ADDRESS,
        )


@dataclass(frozen=True)
class SmartAccountState:
    chain_id: int
    version: str
    address: str
    owner: str
    is_deployed: bool
    entry_point_address: str
    implementation_address: str
    fallback_handler_address: str
    factory_address: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "version": self.version,
            "address": self.address,
            "owner": self.owner,
            "isDeployed": self.is_deployed,
            "entryPointAddress": self.entry_point_address,
            "implementationAddress": self.implementation_address,
            "fallbackHandlerAddress": self.fallback_handler_address,
            "factoryAddress": self.factory_address,
        }


@dataclass(frozen=True)
class SmartAccountContext:
    """Contract addresses a relayer needs to execute or deploy the wallet"""
    base_wallet: str
    wallet_factory: str
    multi_send: str
    multi_send_call: str
    fallback_gas_tank: str
    entry_point: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "baseWallet": self.base_wallet,
            "walletFactory": self.wallet_factory,
            "multiSend": self.multi_send,
            "multiSendCall": self.multi_send_call,
            "fallbackGasTank": self.fallback_gas_tank,
            "entryPoint": self.entry_point,
        }


@dataclass(frozen=True)
class RawTransaction:
    to: str
    data: str
    value: int
    chain_id: int


@dataclass(frozen=True)
class SignedTransaction:
    raw_tx: RawTransaction
    tx: WalletTransaction


@dataclass(frozen=True)
class GasLimit:
    hex: str
    type: str = "hex"


@dataclass(frozen=True)
class RelayRequest:
    """Payload handed to a relayer"""
    signed_tx: SignedTransaction
    state: SmartAccountState
    context: SmartAccountContext
    gas_limit: Optional[GasLimit] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "rawTx": {
                "to": self.signed_tx.raw_tx.to,
                "data": self.signed_tx.raw_tx.data,
                "value": self.signed_tx.raw_tx.value,
                "chainId": self.signed_tx.raw_tx.chain_id,
            },
            "tx": self.signed_tx.tx.to_dict(),
            "walletInfo": self.state.to_dict(),
            "contractContext": self.context.to_dict(),
        }
        if self.gas_limit:
            payload["gasLimit"] = asdict(self.gas_limit)
        return payload


@dataclass(frozen=True)
class RelayResponse:
    transaction_id: Optional[str] = None
    connection_url: Optional[str] = None

    @property
    def ok(self) -> bool:
        return bool(self.transaction_id)


@dataclass
class FallbackUserOperation:
    """User operation executed through the fallback gas tank"""
    sender: str
    target: str
    nonce: int
    call_data: str
    call_gas_limit: int
    dapp_identifier: str = ""
    signature: str = ""

    def as_tuple(self) -> tuple:
        return (
            self.sender,
            self.target,
            self.nonce,
            bytes(HexBytes(self.call_data)),
            self.call_gas_limit,
            bytes(HexBytes(self.dapp_identifier)).rjust(32, b"\x00"),
            bytes(HexBytes(self.signature)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sender": self.sender,
            "target": self.target,
            "nonce": self.nonce,
            "callData": self.call_data,
            "callGasLimit": self.call_gas_limit,
            "dappIdentifier": self.dapp_identifier,
            "signature": self.signature,
        }


class UpgradeKind(str, Enum):
    IMPLEMENTATION = "implementation"
    FALLBACK_HANDLER = "fallback_handler"


@dataclass(frozen=True)
class UpgradeCheck:
    """Outcome of comparing deployed wallet contracts against the latest ones.

    Either nothing is owed, or `transaction` holds the self-call that upgrades the wallet.
    """
    kind: UpgradeKind
    transaction: Optional[MetaTransaction] = None

    @property
    def required(self) -> bool:
        return self.transaction is not None

    @classmethod
    def not_required(cls, kind: UpgradeKind = UpgradeKind.IMPLEMENTATION) -> "UpgradeCheck":
        return cls(kind=kind)

    @classmethod
    def requires(cls, transaction: MetaTransaction,
                 kind: UpgradeKind = UpgradeKind.IMPLEMENTATION) -> "UpgradeCheck":
        return cls(kind=kind, transaction=transaction)

