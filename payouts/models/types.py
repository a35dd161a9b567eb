from typing import Literal, Any

# type aliases for clarity
EthereumAddress = str
BigNumber = str
HexStr = str
GraphQL_Response = dict[Literal["data"], Any]
