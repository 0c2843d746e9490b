"""Protocol adapters plugged into the generic filler."""

from intent_solver.protocols.base import Approval, ProtocolAdapter
from intent_solver.protocols.erc7683 import Erc7683Adapter, decode_open_event

__all__ = ["Approval", "Erc7683Adapter", "ProtocolAdapter", "decode_open_event"]
