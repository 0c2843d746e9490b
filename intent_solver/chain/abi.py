"""Minimal contract ABIs and event signatures used by the solver."""

from eth_utils import keccak

ERC20_ABI = [
    {
        "name": "approve",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "spender", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "owner", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "decimals",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
    {
        "name": "symbol",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "string"}],
    },
]

DESTINATION_SETTLER_ABI = [
    {
        "name": "fill",
        "type": "function",
        "stateMutability": "payable",
        "inputs": [
            {"name": "orderId", "type": "bytes32"},
            {"name": "originData", "type": "bytes"},
            {"name": "fillerData", "type": "bytes"},
        ],
        "outputs": [],
    },
    {
        "name": "orderStatus",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "orderId", "type": "bytes32"}],
        "outputs": [{"name": "", "type": "bytes32"}],
    },
    {
        "name": "settle",
        "type": "function",
        "stateMutability": "payable",
        "inputs": [{"name": "orderIds", "type": "bytes32[]"}],
        "outputs": [],
    },
    {
        "name": "quoteGasPayment",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "destinationDomain", "type": "uint32"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

ORIGIN_SETTLER_ABI = [
    {
        "name": "withdrawRewards",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "orderId", "type": "bytes32"}],
        "outputs": [],
    },
]

# ERC-7683 structs, in eth_abi type-string form
OUTPUT_TYPE = "(bytes32,uint256,bytes32,uint256)"
FILL_INSTRUCTION_TYPE = "(uint256,bytes32,bytes)"
RESOLVED_ORDER_TYPE = (
    f"(address,uint256,uint32,uint32,bytes32,"
    f"{OUTPUT_TYPE}[],{OUTPUT_TYPE}[],{FILL_INSTRUCTION_TYPE}[])"
)

OPEN_EVENT_SIGNATURE = f"Open(bytes32,{RESOLVED_ORDER_TYPE})"
INTENT_PROVEN_EVENT_SIGNATURE = "IntentProven(bytes32,address)"


def event_topic(signature: str) -> str:
    """keccak256 of the canonical event signature, as 0x hex."""
    return "0x" + keccak(text=signature).hex()


OPEN_EVENT_TOPIC = event_topic(OPEN_EVENT_SIGNATURE)
INTENT_PROVEN_EVENT_TOPIC = event_topic(INTENT_PROVEN_EVENT_SIGNATURE)
