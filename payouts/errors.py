class NetworkError(Exception):
    """Raise if a transport level request fails or returns an unusable response"""

    pass


class RetryExhausted(NetworkError):
    """Raise once every allowed attempt of a retried request has failed"""

    def __init__(self, last_error: Exception, attempts: int):
        super().__init__(f"Request failed after {attempts} attempts: {last_error}")
        self.last_error = last_error
        self.attempts = attempts


class GraphQLError(Exception):
    """Raise if a GraphQL response body carries an `errors` array"""

    def __init__(self, url: str, errors: list):
        super().__init__(f"Error in graph query to {url}: {errors}")
        self.errors = errors


class IntegrityError(Exception):
    """Raise if a ledger cannot be trusted. The whole ledger is rejected"""

    pass


class ContentHashMismatch(IntegrityError):
    pass


class MerkleRootMismatch(IntegrityError):
    pass


class LedgerFormatError(IntegrityError):
    """Raise if hash-verified ledger bytes do not parse into valid rows"""

    pass


class LeafNotFound(Exception):
    """Raise if a (row id, wallet, amount) leaf is absent from a tree"""

    pass


class InvalidOrderHash(ValueError):
    """Raise before querying if an order hash is not 0x + 64 hex chars"""

    pass


class OrderNotFound(Exception):
    pass


class DecodeError(Exception):
    """Raise if order bytes or log data cannot be ABI decoded"""

    pass


class SimulationFailure(Exception):
    """Raise if the dry run of a claim transaction reverts"""

    pass


class NoHoldingsError(Exception):
    pass


class BadConfigException(Exception):
    pass


class MissingEnvironmentVariableException(Exception):
    pass


class TooManyLoopsError(Exception):
    """Raise if a loop runs too many times"""

    pass


class TransactionReverted(Exception):
    """Raise if a sent claim transaction is mined with a failed status"""

    pass
