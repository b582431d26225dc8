"""
Engine Exceptions

Exceptions are reserved for missing or invalid request inputs. Anything driven by
market data (a strategy that fails its thresholds, a tripped breaker) is
returned as a Rejection value instead.
"""


class MissingMarketDataError(Exception):
    """
    Raised when a required market input is unavailable.

    Fatal for the whole request: missing underlying price, empty
    expiration set, or no price from either freshness tier.

    Attributes:
        message: Human-readable error message
        symbol: Underlying symbol the request was for
        field: Name of the missing input
    """

    def __init__(self, message: str, *, symbol: str, field: str):
        self.message = message
        self.symbol = symbol
        self.field = field
        super().__init__(self.message)

    def __repr__(self) -> str:
        return (
            f"MissingMarketDataError(symbol={self.symbol}, field={self.field}, "
            f"message='{self.message}')"
        )

    def __str__(self) -> str:
        return self.message


class InvalidRequestError(ValueError):
    """
    Raised when a request lacks a required identifying field (symbol, strikes)
    or carries an out-of-range value (account size, simulation count).

    Attributes:
        message: Human-readable error message
        field: Name of the offending field
    """

    def __init__(self, message: str, *, field: str):
        self.message = message
        self.field = field
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"InvalidRequestError(field={self.field}, message='{self.message}')"

    def __str__(self) -> str:
        return self.message
