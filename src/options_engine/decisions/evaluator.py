"""
Entry/Exit Evaluation

Wires the pre-trade validator, strike probabilities and price history into
two DecisionEngines: one with the entry rules, one with the exit rules.

Key patterns:
- Rule lists come from decisions.rules and are registered, not hardcoded
- Entry: validate → entry rules (NO_ENTRY if every rule errors)
- Exit: record price → short-strike probabilities → exit rules (HOLD if every rule errors)
- A short strike missing from the chain leaves that probability unset;
  exit rules that need it are skipped
"""

from datetime import date
from typing import Optional, Sequence

from loguru import logger

from options_engine.analytics.probability import ProbabilityCalculator, StrikeProbability
from options_engine.config import DecisionConfig
from options_engine.decisions.engine import DecisionEngine
from options_engine.decisions.models import (
    EntryContext,
    EntryEvaluation,
    ExitContext,
    ExitEvaluation,
    ExitPosition,
    MarketContext,
    TradeStrikes,
)
from options_engine.decisions.price_history import PriceHistory
from options_engine.decisions.rules import default_entry_rules, default_exit_rules, no_entry_fallback
from options_engine.decisions.validator import PreTradeValidator
from options_engine.models import Bar, ChainSnapshot, OptionRight, Strategy


class DecisionEvaluator:
    """
    Evaluate entries and exits.

    Example:
        >>> evaluator = DecisionEvaluator()
        >>> entry = evaluator.evaluate_entry(chain, TradeStrikes(short_call=600, short_put=550), exp)
        >>> entry.decision.action
        <EntryAction.ENTER_NORMAL: 'ENTER_NORMAL'>
    """

    def __init__(
        self,
        config: Optional[DecisionConfig] = None,
        calculator: Optional[ProbabilityCalculator] = None,
        entry_engine: Optional[DecisionEngine] = None,
        exit_engine: Optional[DecisionEngine] = None,
    ):
        self.config = config or DecisionConfig()
        self.calculator = calculator or ProbabilityCalculator()
        self.validator = PreTradeValidator(self.calculator)
        self.entry_engine = entry_engine or DecisionEngine(
            default_entry_rules(self.config), fallback=no_entry_fallback
        )
        self.exit_engine = exit_engine or DecisionEngine(default_exit_rules(self.config))
        self._log = logger.bind(component="decisions")

    def evaluate_entry(
        self,
        chain: ChainSnapshot,
        strikes: TradeStrikes,
        expiration: date,
        bars: Sequence[Bar] = (),
        market: Optional[MarketContext] = None,
        strategy_type: str = "iron_condor",
    ) -> EntryEvaluation:
        """
        Raises:
            MissingMarketDataError: Spot, expiration or strike missing from the chain
            InvalidRequestError: No short strike given
        """
        validation = self.validator.validate_chain(
            chain, strikes, expiration, bars, market, strategy_type
        )
        decision = self.entry_engine.evaluate(EntryContext(validation))
        return EntryEvaluation(decision=decision, validation=validation)

    def evaluate_strategy_entry(
        self,
        chain: ChainSnapshot,
        strategy: Strategy,
        bars: Sequence[Bar] = (),
        market: Optional[MarketContext] = None,
    ) -> EntryEvaluation:
        validation = self.validator.validate_strategy(chain, strategy, bars, market)
        decision = self.entry_engine.evaluate(EntryContext(validation))
        return EntryEvaluation(decision=decision, validation=validation)

    def _short_probability(
        self,
        chain: Optional[ChainSnapshot],
        position: ExitPosition,
        right: OptionRight,
        current_price: float,
        bars: Sequence[Bar],
    ) -> Optional[StrikeProbability]:
        strike = position.short_call if right is OptionRight.CALL else position.short_put
        if chain is None or strike is None:
            return None
        expiration_chain = chain.expirations.get(position.expiration)
        if expiration_chain is None:
            return None
        contracts = expiration_chain.calls if right is OptionRight.CALL else expiration_chain.puts
        contract = next((c for c in contracts if c.strike == strike), None)
        if contract is None or contract.implied_volatility <= 0:
            self._log.warning(f"{position.symbol}: no usable {right.value} ${strike} quote")
            return None
        return self.calculator.calculate(contract, current_price, bars, as_of=chain.as_of)

    def evaluate_exit(
        self,
        position: ExitPosition,
        current_price: float,
        history: PriceHistory,
        chain: Optional[ChainSnapshot] = None,
        bars: Sequence[Bar] = (),
        as_of: Optional[date] = None,
    ) -> ExitEvaluation:
        """
        Record the current price and evaluate the exit rules.

        Args:
            position: Open position (short strikes, entry credit)
            current_price: Latest underlying price
            history: Price history for this position (mutated: price appended)
            chain: Current chain for the position's expiration (profit target needs it)
            bars: Daily bars for ATR/realized volatility
            as_of: Date for DTE; defaults to the chain date, then the history clock
        """
        history.add(current_price)
        call_prob = self._short_probability(chain, position, OptionRight.CALL, current_price, bars)
        put_prob = self._short_probability(chain, position, OptionRight.PUT, current_price, bars)

        reference = call_prob or put_prob
        if reference is not None:
            dte = reference.dte
        else:
            today = as_of or (chain.as_of if chain is not None else history.clock.today())
            dte = (position.expiration - today).days

        context = ExitContext(
            position=position,
            current_price=current_price,
            history=history,
            call_probability=call_prob,
            put_probability=put_prob,
            dte=dte,
        )
        decision = self.exit_engine.evaluate(context)
        return ExitEvaluation(
            decision=decision,
            symbol=position.symbol,
            current_price=current_price,
            price_trend=history.trend(),
            call_probability=call_prob,
            put_probability=put_prob,
        )
