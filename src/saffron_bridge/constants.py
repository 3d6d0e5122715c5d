"""Circle CCTP domain IDs, testnet contract addresses and event signatures.

Base Sepolia burns through the CCTP TokenMessenger. Aptos testnet receives
through a compiled script that calls the Move MessageTransmitter and
TokenMessengerMinter packages.

Reference: https://developers.circle.com/cctp
"""
from __future__ import annotations

from eth_utils import keccak

# CCTP domain IDs (assigned by Circle)
CCTP_DOMAINS: dict[str, int] = {
    "base": 6,
    "aptos": 9,
}

# Base Sepolia
BASE_SEPOLIA_CHAIN_ID = 84532
BASE_SEPOLIA_RPC_URL = "https://sepolia.base.org"
BASE_SEPOLIA_TOKEN_MESSENGER = "0x9f3B8679c73C2Fef8b59B4f3444d4e156fb70AA5"
BASE_SEPOLIA_USDC = "0x036CbD53842c5426634e7929541eC2318f3dCF7e"

# Aptos testnet
APTOS_TESTNET_NODE_URL = "https://fullnode.testnet.aptoslabs.com"
APTOS_USDC_METADATA = "0x69091fbab5f7d635ee7ac5098cf0c1efbe31d68fec0f2cd565e8d168daf52832"
APTOS_FUNGIBLE_STORE_RESOURCE = "0x1::fungible_asset::FungibleStore"
# Accounts that still hold USDC as a legacy coin
APTOS_USDC_COIN_STORE_RESOURCE = f"0x1::coin::CoinStore<{APTOS_USDC_METADATA}::coin::USDC>"

# Circle attestation API (Iris)
CIRCLE_ATTESTATION_API_SANDBOX_URL = "https://iris-api-sandbox.circle.com"
ATTESTATION_PATH = "/v1/attestations/{message_hash}"

USDC_DECIMALS = 6
MAX_UINT256 = 2**256 - 1

# ERC-20 function selectors
ERC20_APPROVE_SELECTOR = "0x095ea7b3"
ERC20_BALANCE_OF_SELECTOR = "0x70a08231"
ERC20_DECIMALS_SELECTOR = "0x313ce567"

# depositForBurn(uint256,uint32,bytes32,address)
DEPOSIT_FOR_BURN_SELECTOR = "0x6fd3504e"

# Event topics
MESSAGE_SENT_SIGNATURE = "MessageSent(bytes)"
DEPOSIT_FOR_BURN_SIGNATURE = (
    "DepositForBurn(uint64,address,uint256,address,bytes32,uint32,bytes32,bytes32)"
)
MESSAGE_SENT_TOPIC = "0x" + keccak(text=MESSAGE_SENT_SIGNATURE).hex()
DEPOSIT_FOR_BURN_TOPIC = "0x" + keccak(text=DEPOSIT_FOR_BURN_SIGNATURE).hex()

# Compiled Move script calling message_transmitter::receive_message and
# token_messenger::handle_receive_message. Takes (vector<u8>, vector<u8>).
RECEIVE_MESSAGE_SCRIPT_BASE64 = (
    "oRzrCwcAAAoGAQAEAgQEAwgMBRQWBypTCH1AAAABAQACAAAAAwIDAAEBBAMEAAEDBgwKAgoCAAMGDAYKAgYK"
    "AgEIAAEBE21lc3NhZ2VfdHJhbnNtaXR0ZXIPdG9rZW5fbWVzc2VuZ2VyB1JlY2VpcHQPcmVjZWl2ZV9tZXNz"
    "YWdlFmhhbmRsZV9yZWNlaXZlX21lc3NhZ2UIHobOv0V6DGAE81vWSKJ5Rpj1Lg3eCaSGGdzT1Mwj2V+bk3QZ"
    "3akKoGwYNreEf2W7vj8SF1Z3WNwkiL4xpHe5AAABBwsADgEOAhEAEQEBAg=="
)


__all__ = [
    "CCTP_DOMAINS",
    "BASE_SEPOLIA_CHAIN_ID",
    "BASE_SEPOLIA_RPC_URL",
    "BASE_SEPOLIA_TOKEN_MESSENGER",
    "BASE_SEPOLIA_USDC",
    "APTOS_TESTNET_NODE_URL",
    "APTOS_USDC_METADATA",
    "APTOS_FUNGIBLE_STORE_RESOURCE",
    "APTOS_USDC_COIN_STORE_RESOURCE",
    "CIRCLE_ATTESTATION_API_SANDBOX_URL",
    "ATTESTATION_PATH",
    "USDC_DECIMALS",
    "MAX_UINT256",
    "ERC20_APPROVE_SELECTOR",
    "ERC20_BALANCE_OF_SELECTOR",
    "ERC20_DECIMALS_SELECTOR",
    "DEPOSIT_FOR_BURN_SELECTOR",
    "MESSAGE_SENT_TOPIC",
    "DEPOSIT_FOR_BURN_TOPIC",
    "RECEIVE_MESSAGE_SCRIPT_BASE64",
]
