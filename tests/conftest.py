"""
Pytest fixtures for the smart account orchestration tests.

Collaborators that would talk to the network are replaced by in-memory fakes;
HTTP clients themselves are exercised with requests-mock in their own tests.
"""
import pytest
from web3 import Web3

from config import DEFAULT_CONFIG, POLYGON_MUMBAI
from models import ChainConfig, RelayResponse, WalletInfo
from signing import LocalAccountSigner
from smart_account import SmartAccount

# Well-known development key (anvil/hardhat account #0)
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4ff2f80"
OWNER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

CHAIN_ID = POLYGON_MUMBAI
VERSION = "1.0.0"

WALLET = Web3.to_checksum_address("0x5a1e000000000000000000000000000000000001")
IMPLEMENTATION_V1 = Web3.to_checksum_address("0x1e00000000000000000000000000000000000001")
IMPLEMENTATION_LATEST = Web3.to_checksum_address("0x1e00000000000000000000000000000000000002")
FACTORY = Web3.to_checksum_address("0xfac0000000000000000000000000000000000001")
MULTI_SEND = Web3.to_checksum_address("0x3500000000000000000000000000000000000001")
MULTI_SEND_CALL = Web3.to_checksum_address("0x35c0000000000000000000000000000000000001")
HANDLER_V1 = Web3.to_checksum_address("0xfb00000000000000000000000000000000000001")
HANDLER_LATEST = Web3.to_checksum_address("0xfb00000000000000000000000000000000000002")
ENTRY_POINT = Web3.to_checksum_address("0x5ff137d4b0fdcd49dca30c7cf57e578a026d2789")
GAS_TANK = Web3.to_checksum_address("0x9a50000000000000000000000000000000000001")
RECIPIENT = Web3.to_checksum_address("0xb0b0000000000000000000000000000000000001")

DAPP_IDENTIFIER = "0x" + "ab" * 32
GAS_TANK_SIGNATURE = "0x" + "cd" * 65


def chain_config_payload():
    """Chain deployment document as served by the account directory"""
    return {
        "chainId": CHAIN_ID,
        "name": "Polygon Mumbai",
        "providerUrl": "https://rpc.mumbai.test",
        "wallet": [
            {"version": "1.0.0", "address": IMPLEMENTATION_V1},
            {"version": "1.0.1", "address": IMPLEMENTATION_LATEST},
        ],
        "walletFactory": [{"version": "1.0.0", "address": FACTORY}],
        "multiSend": [{"version": "1.0.0", "address": MULTI_SEND}],
        "multiSendCall": [{"version": "1.0.0", "address": MULTI_SEND_CALL}],
        "fallBackHandler": [
            {"version": "1.0.0", "address": HANDLER_V1},
            {"version": "1.0.1", "address": HANDLER_LATEST},
        ],
        "entryPoint": [{"version": "1.0.0", "address": ENTRY_POINT}],
        "fallBackGasTankAddress": [{"version": "1.0.0", "address": GAS_TANK}],
    }


class FakeDirectory:
    def __init__(self):
        self.chains = [ChainConfig.from_dict(chain_config_payload())]
        self.wallet_info = {
            "smartAccountAddress": WALLET,
            "version": VERSION,
            "isDeployed": False,
            "implementationAddress": IMPLEMENTATION_LATEST,
            "fallBackHandlerAddress": HANDLER_LATEST,
            "factoryAddress": FACTORY,
            "entryPointAddress": ENTRY_POINT,
        }
        self.fallback_enabled = False
        self.resolve_error = None
        self.resolutions = 0
        self.estimates = []

    async def get_all_supported_chains(self):
        return self.chains

    async def get_wallet_info(self, owner, chain_id, index=0, version=None):
        self.resolutions += 1
        if self.resolve_error:
            raise self.resolve_error
        return WalletInfo.from_dict(self.wallet_info)

    async def is_fallback_enabled(self):
        if isinstance(self.fallback_enabled, Exception):
            raise self.fallback_enabled
        return self.fallback_enabled

    async def estimate_transaction_gas(self, chain_id, wallet_address, transaction, is_deployed):
        self.estimates.append((chain_id, wallet_address, transaction, is_deployed))
        return {"targetTxGas": 65000, "baseGas": 21000}

    async def get_smart_accounts_by_owner(self, chain_id, owner, index=0):
        return [dict(self.wallet_info, owner=owner)]

    async def get_all_token_balances(self, chain_id, eoa_address, token_addresses=None):
        return [{"chainId": chain_id, "owner": eoa_address, "tokens": token_addresses or []}]

    async def get_total_balance_in_usd(self, chain_id, eoa_address, token_addresses=None):
        return {"totalBalance": 42.5}

    async def get_transaction_by_address(self, chain_id, address):
        return [{"address": address}]

    async def get_transaction_by_hash(self, tx_hash):
        return {"hash": tx_hash}


class FakeChainReader:
    def __init__(self):
        self.deployed = False
        self.wallet_nonce = 7
        self.gas_tank_nonce = 3
        self.entry_point_nonce = 11
        self.gas_price = 2_000_000_000
        self.gas_tank_nonce_calls = []
        self.wallet_nonce_calls = []

    def is_deployed(self, address):
        return self.deployed

    def get_wallet_nonce(self, wallet, batch_id):
        self.wallet_nonce_calls.append((wallet, batch_id))
        return self.wallet_nonce

    def get_gas_tank_nonce(self, gas_tank, sender):
        self.gas_tank_nonce_calls.append((gas_tank, sender))
        return self.gas_tank_nonce

    def get_entry_point_nonce(self, entry_point, sender, key=0):
        return self.entry_point_nonce

    def get_gas_price(self):
        return self.gas_price


class FakeRelayer:
    def __init__(self, transaction_id="0xrelayed"):
        self.transaction_id = transaction_id
        self.fee_options = []
        self.requests = []

    async def get_fee_options(self, chain_id):
        return self.fee_options

    async def relay(self, relay_request, notifier=None):
        self.requests.append(relay_request)
        if not self.transaction_id:
            return RelayResponse()
        if notifier:
            notifier("transactionRelayed", {"transactionId": self.transaction_id})
        return RelayResponse(transaction_id=self.transaction_id)


class FakeFallbackRelayer(FakeRelayer):
    def __init__(self):
        super().__init__(transaction_id="0xfallback")


class FakeSigningService:
    def __init__(self):
        self.user_ops = []
        self.paymaster_requests = []

    async def get_dapp_identifier_and_sign(self, user_op):
        self.user_ops.append(user_op.to_dict())
        return {"dappIdentifier": DAPP_IDENTIFIER, "signature": GAS_TANK_SIGNATURE}

    async def get_paymaster_and_data(self, user_op):
        self.paymaster_requests.append(user_op)
        return "0x" + "ee" * 20


class FakeProvider:
    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.batches = []

    async def send_transaction_batch(self, transactions, sponsored=False):
        self.batches.append((list(transactions), sponsored))
        return "0xuserophash"


class FakeBundler:
    def __init__(self):
        self.sent = []

    def estimate_user_operation_gas(self, user_operation):
        return {"callGasLimit": "0x30d40", "verificationGasLimit": "0x186a0", "preVerificationGas": "0xc350"}

    def send_user_operation(self, signed_user_op):
        self.sent.append(signed_user_op)
        return "0xuserophash"


@pytest.fixture
def signer():
    return LocalAccountSigner(TEST_PRIVATE_KEY)


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def reader():
    return FakeChainReader()


@pytest.fixture
def relayer():
    return FakeRelayer()


@pytest.fixture
def fallback_relayer():
    return FakeFallbackRelayer()


@pytest.fixture
def signing_service():
    return FakeSigningService()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def context_factories(reader, fallback_relayer, signing_service, provider):
    def provider_factory(**kwargs):
        provider.kwargs = kwargs
        return provider

    return {
        "reader_factory": lambda provider_url: reader,
        "fallback_relayer_factory": lambda **kwargs: fallback_relayer,
        "signing_service_factory": lambda url, dapp_api_key: signing_service,
        "provider_factory": provider_factory,
    }


@pytest.fixture
def account(signer, directory, relayer, context_factories):
    return SmartAccount(signer, DEFAULT_CONFIG, directory=directory, relayer=relayer, **context_factories)


@pytest.fixture
def deployed(directory, reader):
    """Mark the wallet as deployed, both on chain and in the directory"""
    reader.deployed = True
    directory.wallet_info["isDeployed"] = True


@pytest.fixture
def stale_implementation(directory, deployed):
    directory.wallet_info["implementationAddress"] = IMPLEMENTATION_V1

