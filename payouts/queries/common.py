from copy import deepcopy
from typing import Any, Optional, TypedDict, TypeVar

from payouts.errors import GraphQLError, NetworkError, TooManyLoopsError
from payouts.models import GraphQL_Response
from payouts.network import DEFAULT_RETRY_POLICY, RetryPolicy, fetch_json_with_retry


class GraphQLConfig(TypedDict):
    """
    Typechecker for JSON/Dict data to be passed to the graph
    :param `query`: the query to send to The Graph
    :param `variables`: injected query params in dictionary format
    """

    query: str
    variables: dict[str, Any]


# python insantiates generics separate to function definition
T = TypeVar("T")


def extract_nested_graphql(res: GraphQL_Response, access_path: list[str]):
    """
    This function walks through a dictionary until it finds the data you want.

    :param `access_path`: in the format ['first_key', 'nested_key_level0', 'nested_key_level1', ....]
    :param `res`: api response from graphql. First key should be 'data'
    """
    deepcopy_access_path = deepcopy(access_path)
    current = res["data"]
    while len(deepcopy_access_path) > 0:
        current = current[deepcopy_access_path.pop(0)]
    return current


def graphql_with_retry(
    url: str,
    query: str,
    variables: Optional[dict[str, Any]] = None,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
) -> GraphQL_Response:
    """
    POST a query through the retrying fetch layer.
    A body with an `errors` array is a failure even when the status is 200.
    """
    response = fetch_json_with_retry(
        url, "POST", policy, json=dict(query=query, variables=variables or {})
    )

    if not response:
        raise NetworkError(f"No results for graph query to {url}")
    if response.get("errors"):
        raise GraphQLError(url, response["errors"])
    if "data" not in response:
        raise NetworkError(f"Missing data in graph query response from {url}")

    return response


def graphql_iterate_query(
    url: str,
    access_path: list[str],
    params: GraphQLConfig,
    max_loops: int = 1000,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
) -> list[T]:
    """
    Subgraphs cap the number of results for a single query.
    This function chunks queries into batches then stops when it returns no results
    :param `url`: the subgraph endpoint
    :param `access_path`: eg ['trades'] - set of keys to fetch data
    :param `params`: GraphQL config such as the actual query and variables
    """
    variables = dict(params["variables"], skip=0)
    response = graphql_with_retry(url, params["query"], variables, policy)
    all_results: list[T] = list(extract_nested_graphql(response, access_path))

    current_batch = all_results
    loops = 0
    while len(current_batch) > 0:
        if loops >= max_loops:
            raise TooManyLoopsError("graphql_iterate_query")
        variables["skip"] = len(all_results)
        response = graphql_with_retry(url, params["query"], variables, policy)
        current_batch = extract_nested_graphql(response, access_path)
        all_results += current_batch
        loops += 1
    return all_results
