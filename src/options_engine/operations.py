"""
Operation Surface

Named operations exposed to a front-end dispatcher. Each operation takes a
typed request dataclass and returns a typed result or a Rejection.

Key patterns:
- One request dataclass per operation
- Chains come from the request or, when omitted, from the provider via the
  TTL chain cache
- MissingMarketDataError / InvalidRequestError are converted to a Rejection
  at this boundary; everything below raises them
- dispatch(name, request) for callers that only know operation names
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Optional, Sequence, Union

import numpy as np
from loguru import logger

from options_engine.analytics.contract_metrics import ContractAnalytics, analyze_contract
from options_engine.analytics.exposure import ExposureAnalyzer, ExposureReport
from options_engine.analytics.flow import FlowDetector, FlowReport
from options_engine.analytics.liquidity import (
    LiquidityFilterResult,
    LiquidityQuality,
    MarketDepthReport,
    assess_market_depth,
    filter_by_liquidity,
)
from options_engine.analytics.probability import ProbabilityCalculator
from options_engine.analytics.volatility import VolatilityAnalyzer, VolatilityReport
from options_engine.config import EngineConfig
from options_engine.data.provider import MarketDataProvider, resolve_underlying_price
from options_engine.decisions.evaluator import DecisionEvaluator
from options_engine.decisions.models import (
    EntryEvaluation,
    ExitEvaluation,
    ExitPosition,
    MarketContext,
    TradeStrikes,
)
from options_engine.decisions.price_history import PriceHistory
from options_engine.exceptions import InvalidRequestError, MissingMarketDataError
from options_engine.models import Bar, ChainSnapshot, OptionContract, Rejection, Strategy
from options_engine.pnl.monte_carlo import MonteCarloResult, MonteCarloSimulator
from options_engine.pnl.projection import PnLProjector, PnLReport
from options_engine.portfolio.greeks import (
    GreekLimits,
    PortfolioGreeks,
    PortfolioGreeksAggregator,
    PortfolioWarning,
)
from options_engine.portfolio.stress import StressScenario, StressTestReport, run_stress_test
from options_engine.risk.circuit_breaker import RiskCircuitBreaker
from options_engine.risk.costs import TransactionCostModel
from options_engine.risk.sizing import PositionSizer, PositionSizing, require_account_size
from options_engine.stores.breaker_store import BreakerStateStore
from options_engine.stores.chain_cache import OptionChainCache
from options_engine.stores.clock import Clock, SystemClock
from options_engine.stores.documents import JsonFileDocumentStore
from options_engine.stores.positions import PositionStore
from options_engine.strategies.generator import (
    ALL_KINDS,
    GenerationResult,
    StrategyGenerator,
    StrategyKind,
    StrikeSignals,
)
from options_engine.strategies.ranking import RankingResult, StrategyRanker

VOLATILITY_LOOKBACK_DAYS = 120
ATR_LOOKBACK_DAYS = 30


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class GenerateStrategiesRequest:
    """
    Attributes:
        chain: Snapshot to use; fetched from the provider when None
        target_strikes: Strikes used pairwise instead of the auto-scan
        use_signals: Tag candidates with exposure/flow strikes before ranking
        max_results: Ranked strategies to keep (0 keeps all)
    """

    symbol: str
    chain: Optional[ChainSnapshot] = None
    expiration: Optional[date] = None
    kinds: Sequence[StrategyKind] = ALL_KINDS
    target_strikes: Optional[Sequence[float]] = None
    use_signals: bool = True
    max_results: int = 10


@dataclass(slots=True)
class SizePositionRequest:
    strategy: Strategy
    account_size: Optional[float] = None
    check_circuit_breakers: bool = True


@dataclass(slots=True)
class ProjectPnLRequest:
    strategy: Strategy
    current_price: Optional[float] = None
    contracts: Optional[int] = None
    target_prices: Sequence[float] = ()
    days_to_expiry: int = 30


@dataclass(slots=True)
class SimulatePnLRequest:
    strategies: Sequence[Strategy]
    underlying_price: float
    num_simulations: Optional[int] = None
    days_forward: Optional[int] = None
    daily_volatility: Optional[float] = None
    iv_volatility: Optional[float] = None
    seed: Optional[int] = None


@dataclass(slots=True)
class AggregateGreeksRequest:
    strategies: Sequence[Strategy]
    vix_level: Optional[float] = None


@dataclass(slots=True)
class StressTestRequest:
    strategies: Sequence[Strategy]
    underlying_price: float
    scenarios: Optional[Sequence[Union[str, StressScenario]]] = None
    account_size: Optional[float] = None


@dataclass(slots=True)
class EvaluateEntryRequest:
    symbol: str
    expiration: date
    strikes: TradeStrikes
    chain: Optional[ChainSnapshot] = None
    bars: Optional[Sequence[Bar]] = None
    market: MarketContext = field(default_factory=MarketContext)
    strategy_type: str = "iron_condor"


@dataclass(slots=True)
class EvaluateExitRequest:
    """
    Attributes:
        current_price: Latest price; resolved from the provider when None
        chain: Chain for the position's expiration (profit target needs quotes)
    """

    position: ExitPosition
    current_price: Optional[float] = None
    chain: Optional[ChainSnapshot] = None
    bars: Sequence[Bar] = ()


@dataclass(slots=True)
class AnalyzeExposureRequest:
    symbol: str
    chain: Optional[ChainSnapshot] = None


@dataclass(slots=True)
class AnalyzeVolatilityRequest:
    symbol: str
    chain: Optional[ChainSnapshot] = None
    iv_history: Sequence[float] = ()
    closes: Optional[Sequence[float]] = None


@dataclass(slots=True)
class DetectFlowRequest:
    symbol: str
    chain: Optional[ChainSnapshot] = None
    expiration: Optional[date] = None
    avg_volumes: Optional[dict] = None



@dataclass(slots=True)
class AnalyzeContractsRequest:
    symbol: str
    chain: Optional[ChainSnapshot] = None
    expiration: Optional[date] = None
    min_quality: str = "FAIR"
    min_score: int = 50

# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class GenerateStrategiesResult:
    generation: GenerationResult
    ranking: RankingResult
    signals: StrikeSignals

    @property
    def strategies(self) -> list[Strategy]:
        return self.ranking.strategies


@dataclass(slots=True)
class PortfolioGreeksResult:
    greeks: PortfolioGreeks
    within_limits: bool
    limit_breaches: list[str] = field(default_factory=list)
    warnings: list[PortfolioWarning] = field(default_factory=list)


@dataclass(slots=True)
class ContractAnalysisResult:
    """Per-contract analytics plus the chain's liquidity filter and depth grade."""

    analytics: list[ContractAnalytics]
    liquidity: LiquidityFilterResult
    market_depth: MarketDepthReport


@dataclass(frozen=True, slots=True)
class OperationSpec:
    name: str
    description: str
    request_type: type
    method: str


OPERATIONS: dict[str, OperationSpec] = {
    op.name: op
    for op in (
        OperationSpec(
            "generate_strategies",
            "Build vertical, iron condor and calendar candidates from a chain and rank them",
            GenerateStrategiesRequest, "generate_strategies",
        ),
        OperationSpec(
            "size_position",
            "Size a strategy with Kelly, risk limits and transaction costs",
            SizePositionRequest, "size_position",
        ),
        OperationSpec(
            "project_pnl",
            "Project P&L over a price grid with breakevens, EV and time decay",
            ProjectPnLRequest, "project_pnl",
        ),
        OperationSpec(
            "simulate_pnl",
            "Monte Carlo P&L distribution (VaR/CVaR) from portfolio Greeks",
            SimulatePnLRequest, "simulate_pnl",
        ),
        OperationSpec(
            "aggregate_portfolio_greeks",
            "Net portfolio Greeks with limit checks and warnings",
            AggregateGreeksRequest, "aggregate_portfolio_greeks",
        ),
        OperationSpec(
            "run_stress_test",
            "Portfolio P&L under predefined and custom market scenarios",
            StressTestRequest, "run_stress_test",
        ),
        OperationSpec(
            "evaluate_entry",
            "Pre-trade validation and entry decision for short strikes",
            EvaluateEntryRequest, "evaluate_entry",
        ),
        OperationSpec(
            "evaluate_exit",
            "Hold/exit decision for an open position from live price history",
            EvaluateExitRequest, "evaluate_exit",
        ),
        OperationSpec(
            "analyze_exposure",
            "Dealer gamma/vanna exposure, put/call ratios, max pain and OI walls",
            AnalyzeExposureRequest, "analyze_exposure",
        ),
        OperationSpec(
            "analyze_volatility",
            "Volatility smile, term structure, IV rank and IV vs realized",
            AnalyzeVolatilityRequest, "analyze_volatility",
        ),
        OperationSpec(
            "detect_flow",
            "Unusual options activity and call/put flow imbalance",
            DetectFlowRequest, "detect_flow",
        ),
        OperationSpec(
            "analyze_contracts",
            "Per-contract moneyness, leverage and time value with liquidity scoring and market depth",
            AnalyzeContractsRequest, "analyze_contracts",
        ),
    )
}


def _as_rejection(operation: str, error: Exception) -> Rejection:
    if isinstance(error, MissingMarketDataError):
        return Rejection(
            reason=error.message,
            code="missing_market_data",
            details={"operation": operation, "symbol": error.symbol, "field": error.field},
        )
    return Rejection(
        reason=str(error),
        code="invalid_request",
        details={"operation": operation, "field": getattr(error, "field", None)},
    )


class OperationSurface:
    """
    Entry point for front ends.

    Example:
        >>> surface = OperationSurface(EngineConfig(), provider=provider)
        >>> result = surface.dispatch("generate_strategies", GenerateStrategiesRequest("SPY"))
        >>> if isinstance(result, Rejection):
        ...     print(result.reason)
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        provider: Optional[MarketDataProvider] = None,
        position_store: Optional[PositionStore] = None,
        breaker: Optional[RiskCircuitBreaker] = None,
        clock: Optional[Clock] = None,
    ):
        self.config = config or EngineConfig()
        self.provider = provider
        self.clock = clock or SystemClock()
        cfg = self.config

        self.chain_cache = OptionChainCache(cfg.cache.chain_ttl_secs, clock=self.clock)
        self.positions = position_store or PositionStore(clock=self.clock)
        self.breaker = breaker or RiskCircuitBreaker(
            cfg.circuit_breakers, BreakerStateStore(clock=self.clock)
        )

        self.exposure = ExposureAnalyzer()
        self.volatility = VolatilityAnalyzer()
        self.flow = FlowDetector(cfg.flow)
        self.generator = StrategyGenerator(cfg.generator)
        self.ranker = StrategyRanker(cfg.ranking)
        self.costs = TransactionCostModel(cfg.transaction_costs)
        self.sizer = PositionSizer(cfg.risk, self.costs)
        self.projector = PnLProjector(cfg.projection)
        self.aggregator = PortfolioGreeksAggregator(GreekLimits())
        self.decisions = DecisionEvaluator(cfg.decisions, ProbabilityCalculator())
        self._histories: dict[str, PriceHistory] = {}
        self._log = logger.bind(component="operations")

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        provider: Optional[MarketDataProvider] = None,
        clock: Optional[Clock] = None,
    ) -> "OperationSurface":
        """Surface with JSON-file position and breaker stores at the configured paths."""
        clock = clock or SystemClock()
        positions = PositionStore(JsonFileDocumentStore(config.storage.positions_path), clock=clock)
        breaker = RiskCircuitBreaker(
            config.circuit_breakers,
            BreakerStateStore(JsonFileDocumentStore(config.storage.breaker_state_path), clock=clock),
        )
        return cls(config, provider, positions, breaker, clock)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    @staticmethod
    def list_operations() -> list[dict[str, str]]:
        return [{"name": s.name, "description": s.description} for s in OPERATIONS.values()]

    def dispatch(self, name: str, request: Any) -> Any:
        op = OPERATIONS.get(name)
        if op is None:
            self._log.warning(f"Unknown operation: {name}")
            return Rejection(
                reason=f"Unknown operation: {name}",
                code="unknown_operation",
                details={"available": list(OPERATIONS)},
            )
        if not isinstance(request, op.request_type):
            return Rejection(
                reason=f"{name} expects {op.request_type.__name__}, got {type(request).__name__}",
                code="invalid_request",
                details={"operation": name},
            )
        return getattr(self, op.method)(request)

    def _guarded(self, operation: str, run: Callable[[], Any]) -> Any:
        try:
            return run()
        except (MissingMarketDataError, InvalidRequestError) as e:
            self._log.warning(f"{operation} rejected: {e}")
            return _as_rejection(operation, e)

    # ------------------------------------------------------------------
    # Input resolution
    # ------------------------------------------------------------------

    def _require_provider(self, what: str) -> MarketDataProvider:
        if self.provider is None:
            raise InvalidRequestError(f"{what} must be supplied when no market data provider is set", field=what)
        return self.provider

    def _chain(self, symbol: str, chain: Optional[ChainSnapshot], expiration: Optional[date] = None) -> ChainSnapshot:
        if chain is not None:
            return chain
        if not symbol:
            raise InvalidRequestError("symbol is required", field="symbol")
        cached = self.chain_cache.get(symbol, expiration)
        if cached is not None:
            return cached
        provider = self._require_provider("chain")
        fetched = provider.get_chain(symbol, expiration)
        if fetched is None:
            raise MissingMarketDataError(f"No option chain for {symbol}", symbol=symbol, field="chain")
        self.chain_cache.put(fetched, expiration)
        return fetched

    def _price(self, symbol: str, price: Optional[float]) -> float:
        if price is not None:
            return price
        return resolve_underlying_price(self._require_provider("current_price"), symbol)

    def _bars(self, symbol: str, bars: Optional[Sequence[Bar]], days: int) -> Sequence[Bar]:
        if bars is not None:
            return bars
        if self.provider is None:
            return ()
        return self.provider.get_bars(symbol, days)

    @staticmethod
    def _contracts(chain: ChainSnapshot, expiration: Optional[date]) -> list[OptionContract]:
        if expiration is None:
            return chain.all_contracts()
        if expiration not in chain.expirations:
            raise MissingMarketDataError(
                f"No {expiration} expiration in {chain.symbol} chain",
                symbol=chain.symbol,
                field="expiration",
            )
        return chain.expirations[expiration].contracts()

    @staticmethod
    def _require_strategies(strategies: Sequence[Strategy]) -> list[Strategy]:
        if not strategies:
            raise InvalidRequestError("at least one strategy is required", field="strategies")
        return list(strategies)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def generate_strategies(self, request: GenerateStrategiesRequest) -> Union[GenerateStrategiesResult, Rejection]:
        def run() -> GenerateStrategiesResult:
            chain = self._chain(request.symbol, request.chain)
            signals = StrikeSignals()
            if request.use_signals:
                signals.institutional = self.exposure.analyze(chain).institutional_strikes()
                signals.unusual = self.flow.scan(chain.all_contracts()).unusual_strikes()

            generation = self.generator.generate(
                chain,
                expiration=request.expiration,
                kinds=request.kinds,
                target_strikes=request.target_strikes,
                signals=signals if request.use_signals else None,
            )
            ranking = self.ranker.rank(generation.strategies)
            if request.max_results > 0:
                ranking.ranked = ranking.ranked[: request.max_results]
            return GenerateStrategiesResult(generation, ranking, signals)

        return self._guarded("generate_strategies", run)

    def size_position(self, request: SizePositionRequest) -> Union[PositionSizing, Rejection]:
        def run() -> Union[PositionSizing, Rejection]:
            account_size = require_account_size(
                request.account_size if request.account_size is not None else self.config.account_size
            )
            if request.check_circuit_breakers:
                check = self.breaker.check(account_size=account_size)
                if not check.new_positions_allowed:
                    return Rejection(
                        reason=f"New positions blocked: {check.message}",
                        code="circuit_breaker_tripped",
                        details={"tripped": [event.to_dict() for event in check.tripped]},
                    )

            sizing = self.sizer.size(request.strategy, account_size)
            if sizing.rejection is not None:
                return sizing.rejection
            return sizing

        return self._guarded("size_position", run)

    def project_pnl(self, request: ProjectPnLRequest) -> Union[PnLReport, Rejection]:
        def run() -> PnLReport:
            price = self._price(request.strategy.symbol, request.current_price)
            return self.projector.report(
                request.strategy,
                price,
                contracts=request.contracts,
                target_prices=request.target_prices,
                days_to_expiry=request.days_to_expiry,
            )

        return self._guarded("project_pnl", run)

    def simulate_pnl(self, request: SimulatePnLRequest) -> Union[MonteCarloResult, Rejection]:
        def run() -> MonteCarloResult:
            greeks = self.aggregator.aggregate(self._require_strategies(request.strategies))
            seed = request.seed if request.seed is not None else self.config.monte_carlo.seed
            simulator = MonteCarloSimulator(self.config.monte_carlo, np.random.default_rng(seed))
            return simulator.simulate(
                greeks,
                request.underlying_price,
                num_simulations=request.num_simulations,
                days_forward=request.days_forward,
                daily_volatility=request.daily_volatility,
                iv_volatility=request.iv_volatility,
            )

        return self._guarded("simulate_pnl", run)

    def aggregate_portfolio_greeks(self, request: AggregateGreeksRequest) -> Union[PortfolioGreeksResult, Rejection]:
        def run() -> PortfolioGreeksResult:
            greeks = self.aggregator.aggregate(self._require_strategies(request.strategies))
            within, breaches = self.aggregator.check_limits(greeks)
            return PortfolioGreeksResult(
                greeks=greeks,
                within_limits=within,
                limit_breaches=breaches,
                warnings=self.aggregator.warnings(greeks, request.vix_level),
            )

        return self._guarded("aggregate_portfolio_greeks", run)

    def run_stress_test(self, request: StressTestRequest) -> Union[StressTestReport, Rejection]:
        def run() -> StressTestReport:
            if request.account_size is not None:
                require_account_size(request.account_size)
            if request.underlying_price <= 0:
                raise InvalidRequestError(
                    f"underlying_price must be positive, got {request.underlying_price}",
                    field="underlying_price",
                )
            greeks = self.aggregator.aggregate(self._require_strategies(request.strategies))
            return run_stress_test(
                greeks,
                request.underlying_price,
                scenarios=request.scenarios,
                account_size=request.account_size,
            )

        try:
            return self._guarded("run_stress_test", run)
        except ValueError as e:
            return Rejection(reason=str(e), code="no_scenarios")

    def evaluate_entry(self, request: EvaluateEntryRequest) -> Union[EntryEvaluation, Rejection]:
        def run() -> EntryEvaluation:
            chain = self._chain(request.symbol, request.chain, request.expiration)
            bars = self._bars(request.symbol, request.bars, ATR_LOOKBACK_DAYS)
            return self.decisions.evaluate_entry(
                chain,
                request.strikes,
                request.expiration,
                bars=bars,
                market=request.market,
                strategy_type=request.strategy_type,
            )

        return self._guarded("evaluate_entry", run)

    def history_for(self, symbol: str) -> PriceHistory:
        """Price history for one symbol; created on first use."""
        if symbol not in self._histories:
            self._histories[symbol] = PriceHistory(
                self.config.decisions.price_history_capacity, clock=self.clock
            )
        return self._histories[symbol]

    def evaluate_exit(self, request: EvaluateExitRequest) -> Union[ExitEvaluation, Rejection]:
        def run() -> ExitEvaluation:
            position = request.position
            price = self._price(position.symbol, request.current_price)
            return self.decisions.evaluate_exit(
                position,
                price,
                self.history_for(position.symbol),
                chain=request.chain,
                bars=request.bars,
                as_of=self.clock.today(),
            )

        return self._guarded("evaluate_exit", run)

    def analyze_exposure(self, request: AnalyzeExposureRequest) -> Union[ExposureReport, Rejection]:
        return self._guarded(
            "analyze_exposure",
            lambda: self.exposure.analyze(self._chain(request.symbol, request.chain)),
        )

    def analyze_volatility(self, request: AnalyzeVolatilityRequest) -> Union[VolatilityReport, Rejection]:
        def run() -> VolatilityReport:
            chain = self._chain(request.symbol, request.chain)
            closes = request.closes
            if closes is None:
                closes = [b.close for b in self._bars(request.symbol, None, VOLATILITY_LOOKBACK_DAYS)]
            return self.volatility.analyze(chain, iv_history=request.iv_history, closes=closes)

        return self._guarded("analyze_volatility", run)

    def detect_flow(self, request: DetectFlowRequest) -> Union[FlowReport, Rejection]:
        def run() -> FlowReport:
            chain = self._chain(request.symbol, request.chain)
            return self.flow.scan(self._contracts(chain, request.expiration), request.avg_volumes)

        return self._guarded("detect_flow", run)

    def analyze_contracts(self, request: AnalyzeContractsRequest) -> Union[ContractAnalysisResult, Rejection]:
        def run() -> ContractAnalysisResult:
            try:
                min_quality = LiquidityQuality(request.min_quality)
            except ValueError:
                raise InvalidRequestError(
                    f"Unknown liquidity quality: {request.min_quality}", field="min_quality"
                ) from None
            chain = self._chain(request.symbol, request.chain)
            spot = chain.require_price()
            contracts = self._contracts(chain, request.expiration)
            today = self.clock.today()
            return ContractAnalysisResult(
                analytics=[analyze_contract(c, spot, today) for c in contracts],
                liquidity=filter_by_liquidity(contracts, min_quality, request.min_score, self.costs),
                market_depth=assess_market_depth(contracts, self.costs),
            )

        return self._guarded("analyze_contracts", run)
