import os
from typing import Optional

from dotenv import load_dotenv
from payouts.errors import MissingEnvironmentVariableException

load_dotenv()


def env_var(accessor: str, default: Optional[str] = None) -> str:
    """
    Attempt to fetch an environment variable and throw
    an error if not found and no default is given
    """
    var = os.environ.get(accessor, default)
    if not var:
        raise MissingEnvironmentVariableException(accessor)
    return var


class SUBGRAPHS:
    ORDERBOOK = env_var(
        "SUBGRAPH_ORDERBOOK",
        "https://api.goldsky.com/api/public/project_clv14x04y9kzi01saerx7bxpg/subgraphs/ob4-base/2024-12-13-9c39/gn",
    )


HYPERSYNC_URL = env_var("HYPERSYNC_URL", "https://8453.hypersync.xyz/query")

# topic0 of `Context(address sender, uint256[][] context)` on the order book
CONTEXT_EVENT_TOPIC = (
    "0x17a5c0f3785132a57703932032f6863e7920434150aa1dc940e567b440fdce1f"
)


def rpc_url() -> str:
    # only needed when submitting, so not resolved at import time
    return env_var("RPC_URL")


def claimer_private_key() -> str:
    return env_var("CLAIMER_PRIVATE_KEY")
