from typing import Union

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes

from payouts.errors import DecodeError
from payouts.models import OrderDescriptor

IO = "(address,uint8,uint256)"
EVALUABLE_V3 = "(address,address,bytes)"
ORDER_V3 = f"(address,{EVALUABLE_V3},{IO}[],{IO}[],bytes32)"


def decode_order(order_bytes: Union[str, bytes]) -> OrderDescriptor:
    """Decode the abi encoded OrderV3 returned by the order book subgraph"""
    try:
        (order,) = decode([ORDER_V3], bytes(HexBytes(order_bytes)))
        return OrderDescriptor.from_abi(order)
    except (DecodingError, ValueError, TypeError) as e:
        raise DecodeError(f"Could not decode order bytes: {e}") from e


def encode_order(order: OrderDescriptor) -> bytes:
    return encode([ORDER_V3], [order.as_abi()])
