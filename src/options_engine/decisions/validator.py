"""
Pre-Trade Validator

Go/no-go checks for a premium-selling trade before entry. Combines strike
probabilities, volatility, market conditions and liquidity into an ordered
list of PASS/WARNING/FAIL checks and an overall verdict.

Key patterns:
- Banded checks: PASS at or better than the first bound, WARNING up to the
  second, FAIL beyond it
- Probability/volatility checks are CRITICAL on failure; market, liquidity
  and expiration checks are HIGH
- Verdict: critical fail → REJECTED, any fail → HIGH_RISK,
  >2 warnings → MODERATE_RISK, any warning → LOW_RISK, else APPROVED
- Missing spot, expiration or strike data raises MissingMarketDataError
"""

from datetime import date
from typing import Optional, Sequence

from loguru import logger

from options_engine.analytics.probability import ProbabilityCalculator, StrikeProbability
from options_engine.decisions.models import (
    CheckSeverity,
    CheckStatus,
    MarketContext,
    Recommendation,
    TradeStrikes,
    ValidationCheck,
    ValidationReport,
    ValidationStatus,
)
from options_engine.exceptions import InvalidRequestError, MissingMarketDataError
from options_engine.models import Bar, ChainSnapshot, OptionRight, Strategy


def band(value: float, pass_at: float, warn_at: float, higher_is_better: bool) -> CheckStatus:
    if higher_is_better:
        if value >= pass_at:
            return CheckStatus.PASS
        return CheckStatus.WARNING if value >= warn_at else CheckStatus.FAIL
    if value < pass_at:
        return CheckStatus.PASS
    return CheckStatus.WARNING if value < warn_at else CheckStatus.FAIL


def _check(
    name: str,
    value: float,
    pass_at: float,
    warn_at: float,
    higher_is_better: bool,
    fail_severity: CheckSeverity,
    messages: tuple[str, str, str],
) -> ValidationCheck:
    """Build one banded check; messages are (pass, warning, fail)."""
    status = band(value, pass_at, warn_at, higher_is_better)
    warning_severity = (
        CheckSeverity.HIGH if fail_severity is CheckSeverity.CRITICAL else CheckSeverity.MEDIUM
    )
    severity = {
        CheckStatus.PASS: CheckSeverity.INFO,
        CheckStatus.WARNING: warning_severity,
        CheckStatus.FAIL: fail_severity,
    }[status]
    message = {
        CheckStatus.PASS: messages[0],
        CheckStatus.WARNING: messages[1],
        CheckStatus.FAIL: messages[2],
    }[status]
    return ValidationCheck(name, status, severity, value, pass_at, message)


def overall_status(checks: Sequence[ValidationCheck]) -> ValidationStatus:
    failures = [c for c in checks if c.status is CheckStatus.FAIL]
    warnings = [c for c in checks if c.status is CheckStatus.WARNING]
    if any(c.severity is CheckSeverity.CRITICAL for c in failures):
        return ValidationStatus.REJECTED
    if failures:
        return ValidationStatus.HIGH_RISK
    if len(warnings) > 2:
        return ValidationStatus.MODERATE_RISK
    if warnings:
        return ValidationStatus.LOW_RISK
    return ValidationStatus.APPROVED


def key_metrics(probabilities: dict[str, StrikeProbability]) -> dict[str, dict[str, str]]:
    metrics = {}
    for role in ("short_call", "short_put"):
        prob = probabilities.get(role)
        if prob is not None:
            metrics[role] = {
                "prob_touch": f"{prob.prob_touch * 100:.1f}%",
                "distance_atr": f"{prob.distance_in_atr:.2f} ATR",
                "expected_move": f"±${prob.expected_move:.2f}",
            }
    return metrics


def build_recommendation(
    status: ValidationStatus,
    checks: Sequence[ValidationCheck],
    probabilities: dict[str, StrikeProbability],
) -> Recommendation:
    failures = [c for c in checks if c.status is CheckStatus.FAIL]
    warnings = [c for c in checks if c.status is CheckStatus.WARNING]

    if status is ValidationStatus.REJECTED:
        return Recommendation(
            action="DO NOT ENTER TRADE",
            confidence="HIGH",
            reason="Critical validation failures detected - trade has extreme risk",
            issues=[f"{c.name}: {c.message}" for c in failures if c.severity is CheckSeverity.CRITICAL],
            advice=[
                "Do not proceed with this trade",
                "Consider different strikes further OTM",
                "Wait for volatility to decrease",
            ],
        )
    if status is ValidationStatus.HIGH_RISK:
        return Recommendation(
            action="AVOID TRADE",
            confidence="MEDIUM-HIGH",
            reason="Multiple significant risk factors present",
            issues=[f"{c.name}: {c.message}" for c in failures],
            advice=[
                "Consider skipping this opportunity",
                "If proceeding, significantly reduce position size",
                "Set very tight stop losses",
            ],
        )
    if status is ValidationStatus.MODERATE_RISK:
        return Recommendation(
            action="PROCEED WITH CAUTION",
            confidence="MEDIUM",
            reason="Trade has acceptable risk but requires monitoring",
            issues=[f"{c.name}: {c.message}" for c in warnings],
            advice=[
                "Set up alerts at strike levels",
                "Consider 50-75% of normal position size",
                "Review position daily",
            ],
            key_metrics=key_metrics(probabilities),
        )
    if status is ValidationStatus.LOW_RISK:
        return Recommendation(
            action="APPROVED - Minor Cautions",
            confidence="MEDIUM-HIGH",
            reason="Trade passes validation with minor concerns",
            issues=[c.message for c in warnings],
            advice=["Normal position sizing appropriate", "Set standard alerts"],
            key_metrics=key_metrics(probabilities),
        )
    return Recommendation(
        action="APPROVED - GREEN LIGHT",
        confidence="HIGH",
        reason="All validation checks passed - trade setup is solid",
        advice=["Proceed with normal position sizing", "Set standard alerts and monitoring"],
        key_metrics=key_metrics(probabilities),
    )


class PreTradeValidator:
    """
    Validate a trade before entry.

    Example:
        >>> validator = PreTradeValidator()
        >>> report = validator.validate_chain(
        ...     chain, TradeStrikes(short_call=600, short_put=550), expiration, bars=bars,
        ...     market=MarketContext(vix=16.2, market_change_pct=0.3),
        ... )
        >>> report.overall_status
        <ValidationStatus.APPROVED: 'APPROVED'>
    """

    def __init__(self, calculator: Optional[ProbabilityCalculator] = None):
        self.calculator = calculator or ProbabilityCalculator()
        self._log = logger.bind(component="validator")

    def probabilities_for(
        self,
        chain: ChainSnapshot,
        strikes: TradeStrikes,
        expiration: date,
        bars: Sequence[Bar] = (),
    ) -> dict[str, StrikeProbability]:
        """
        Strike probabilities for every strike present in `strikes`.

        Raises:
            MissingMarketDataError: Spot price, expiration or a strike missing from the chain
        """
        spot = chain.require_price()
        expiration_chain = chain.expirations.get(expiration)
        if expiration_chain is None:
            raise MissingMarketDataError(
                f"No {expiration} expiration in {chain.symbol} chain",
                symbol=chain.symbol,
                field="expiration",
            )

        probabilities = {}
        for role, strike, right in strikes.items():
            contracts = expiration_chain.calls if right is OptionRight.CALL else expiration_chain.puts
            contract = next((c for c in contracts if c.strike == strike), None)
            if contract is None:
                raise MissingMarketDataError(
                    f"No {right.value} ${strike} in {chain.symbol} {expiration} chain",
                    symbol=chain.symbol,
                    field="strike",
                )
            probabilities[role] = self.calculator.calculate(contract, spot, bars, as_of=chain.as_of)
        return probabilities

    def validate(
        self,
        symbol: str,
        strategy_type: str,
        expiration: date,
        strikes: TradeStrikes,
        probabilities: dict[str, StrikeProbability],
        underlying_price: float,
        market: Optional[MarketContext] = None,
    ) -> ValidationReport:
        """
        Run every check against precomputed probabilities.

        Raises:
            InvalidRequestError: No short strike to validate
        """
        if not strikes.has_short:
            raise InvalidRequestError(
                f"{symbol} {strategy_type}: at least one short strike is required",
                field="strikes",
            )
        market = market or MarketContext()
        price = underlying_price
        short_call = probabilities.get("short_call")
        short_put = probabilities.get("short_put")
        checks: list[ValidationCheck] = []

        if strikes.short_call is not None:
            buffer = (strikes.short_call - price) / price * 100
            checks.append(_check(
                "Short Call Buffer", buffer, 3.0, 2.0, True, CheckSeverity.CRITICAL,
                (f"Adequate buffer - {buffer:.2f}%",
                 f"Short call buffer marginal - {buffer:.2f}%",
                 f"SHORT CALL TOO CLOSE - Only {buffer:.2f}% buffer"),
            ))
        if strikes.short_put is not None:
            buffer = (price - strikes.short_put) / price * 100
            checks.append(_check(
                "Short Put Buffer", buffer, 3.0, 2.0, True, CheckSeverity.CRITICAL,
                (f"Adequate buffer - {buffer:.2f}%",
                 f"Short put buffer marginal - {buffer:.2f}%",
                 f"SHORT PUT TOO CLOSE - Only {buffer:.2f}% buffer"),
            ))

        for label, prob in (("Short Call", short_call), ("Short Put", short_put)):
            if prob is None:
                continue
            touch = prob.prob_touch * 100
            checks.append(_check(
                f"{label} - Probability of Touch", prob.prob_touch, 0.50, 0.65, False,
                CheckSeverity.CRITICAL,
                (f"Acceptable probability - {touch:.1f}%",
                 f"High probability of touch - {touch:.1f}%",
                 f"EXTREME RISK - {touch:.1f}% chance of touching {label.lower()}"),
            ))

        for label, prob in (("Short Call", short_call), ("Short Put", short_put)):
            # ATR distance is meaningless without bars
            if prob is None or prob.atr <= 0:
                continue
            dist = prob.distance_in_atr
            checks.append(_check(
                f"{label} - ATR Distance", dist, 2.0, 1.5, True, CheckSeverity.CRITICAL,
                (f"Outside normal range - {dist:.2f} ATR away",
                 f"Close to daily range - {dist:.2f} ATR away",
                 f"WITHIN DAILY RANGE - Strike only {dist:.2f} ATR away"),
            ))

        reference = short_call or short_put
        if reference is not None:
            iv = reference.implied_volatility
            checks.append(_check(
                "Implied Volatility Level", iv * 100, 50.0, 75.0, False, CheckSeverity.CRITICAL,
                (f"Normal volatility - IV at {iv * 100:.1f}%",
                 f"Elevated volatility - IV at {iv * 100:.1f}%",
                 f"EXTREME VOLATILITY - IV at {iv * 100:.1f}% - DO NOT SELL OPTIONS"),
            ))

            hv = reference.historical_volatility
            if hv > 0:
                ratio = iv / hv
                checks.append(_check(
                    "IV vs Historical Volatility", ratio, 1.5, 2.0, False, CheckSeverity.CRITICAL,
                    (f"IV reasonable vs history - {ratio:.2f}x HV",
                     f"IV elevated vs history - {ratio:.2f}x HV",
                     f"IV EXTREMELY ELEVATED - {ratio:.2f}x historical volatility"),
                ))

        checks.append(_check(
            "Market Volatility (VIX)", market.vix, 20.0, 25.0, False, CheckSeverity.CRITICAL,
            (f"Normal market volatility - VIX at {market.vix:.2f}",
             f"Market volatility elevated - VIX at {market.vix:.2f}",
             f"MARKET FEAR ELEVATED - VIX at {market.vix:.2f}"),
        ))

        move = market.market_change_pct
        checks.append(_check(
            "Market Direction", abs(move), 1.0, 1.5, False, CheckSeverity.HIGH,
            (f"Market stable - {move:+.2f}%",
             f"Market moving - {move:+.2f}%",
             f"Strong market movement - {move:+.2f}%"),
        ))

        liquid = next((p for p in (short_call, short_put) if p is not None and p.bid > 0), None)
        if liquid is not None:
            spread_pct = liquid.bid_ask_spread / liquid.mid * 100 if liquid.mid > 0 else 0.0
            checks.append(_check(
                "Liquidity - Bid/Ask Spread", spread_pct, 10.0, 20.0, False, CheckSeverity.HIGH,
                (f"Good liquidity - {spread_pct:.1f}% spread",
                 f"Wide spread - {spread_pct:.1f}%",
                 f"POOR LIQUIDITY - {spread_pct:.1f}% spread, difficult to exit"),
            ))

        if reference is not None:
            dte = reference.dte
            checks.append(_check(
                "Days to Expiration", dte, 7, 3, True, CheckSeverity.HIGH,
                (f"Adequate time - {dte} days to expiration",
                 f"Short expiration - {dte} days",
                 f"Very short dated - only {dte} days, high gamma risk"),
            ))

        status = overall_status(checks)
        report = ValidationReport(
            symbol=symbol,
            strategy_type=strategy_type,
            expiration=expiration,
            strikes=strikes,
            underlying_price=price,
            checks=checks,
            probabilities=probabilities,
            overall_status=status,
            recommendation=build_recommendation(status, checks, probabilities),
        )
        self._log.info(
            f"{symbol} {strategy_type} {expiration}: {status.value} "
            f"({len(report.failures)} failed, {len(report.warnings)} warnings)"
        )
        return report

    def validate_chain(
        self,
        chain: ChainSnapshot,
        strikes: TradeStrikes,
        expiration: date,
        bars: Sequence[Bar] = (),
        market: Optional[MarketContext] = None,
        strategy_type: str = "iron_condor",
    ) -> ValidationReport:
        probabilities = self.probabilities_for(chain, strikes, expiration, bars)
        return self.validate(
            chain.symbol, strategy_type, expiration, strikes, probabilities,
            chain.require_price(), market,
        )

    def validate_strategy(
        self,
        chain: ChainSnapshot,
        strategy: Strategy,
        bars: Sequence[Bar] = (),
        market: Optional[MarketContext] = None,
    ) -> ValidationReport:
        """Validate a generated strategy at its nearest expiration."""
        expiration = min(leg.expiration for leg in strategy.legs)
        return self.validate_chain(
            chain,
            TradeStrikes.from_strategy(strategy),
            expiration,
            bars,
            market,
            strategy.strategy_type.value,
        )
