"""
Stress Testing

Runs portfolio Greeks through predefined and custom market scenarios and
grades each outcome against a reference value.

Key patterns:
- Scenarios are frozen dataclasses (price move, IV points, days)
- P&L from portfolio.greeks.scenario_pnl
- Results sorted worst to best
"""

from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from loguru import logger

from options_engine.portfolio.greeks import PortfolioGreeks, ScenarioResult, scenario_pnl


@dataclass(frozen=True, slots=True)
class StressScenario:
    name: str
    price_move_pct: float
    iv_change_pts: float
    days_forward: float
    description: str = ""


STRESS_SCENARIOS: dict[str, StressScenario] = {
    "MARKET_CRASH_MILD": StressScenario(
        "Market Crash (Mild)", -0.05, 10, 0, "Typical correction with moderate volatility spike"
    ),
    "MARKET_CRASH_SEVERE": StressScenario(
        "Market Crash (Severe)", -0.15, 30, 0, "Major selloff with extreme volatility"
    ),
    "FLASH_CRASH": StressScenario(
        "Flash Crash", -0.10, 50, 0, "Sudden dramatic drop with volatility explosion"
    ),
    "VOLATILITY_CRUSH": StressScenario(
        "Volatility Crush", 0.02, -20, 1, "Post-event IV collapse (e.g. after earnings)"
    ),
    "SLOW_BLEED": StressScenario(
        "Slow Bleed", -0.02, 0, 7, "Gradual decline with time decay"
    ),
    "RALLY": StressScenario(
        "Strong Rally", 0.10, -10, 0, "Sharp upward move with reduced volatility"
    ),
    "SIDEWAYS": StressScenario(
        "Sideways Grind", 0.0, -5, 14, "Range-bound market with declining volatility"
    ),
    "WHIPSAW": StressScenario(
        "Whipsaw", 0.0, 15, 3, "High volatility with no directional movement"
    ),
}

SEVERE = ("CATASTROPHIC", "SEVERE")


def create_custom_scenario(
    name: str,
    price_move_pct: float = 0.0,
    iv_change_pts: float = 0.0,
    days_forward: float = 0.0,
    description: str = "Custom scenario",
) -> StressScenario:
    return StressScenario(name, price_move_pct, iv_change_pts, days_forward, description)


def reference_value(greeks: PortfolioGreeks, account_size: Optional[float] = None) -> float:
    """Account size when known and positive, else |net delta| * 10, else 1000."""
    if account_size is not None and account_size > 0:
        return account_size
    return abs(greeks.delta) * 10 or 1000.0


def categorize_severity(pnl: float, reference: float) -> str:
    ratio = pnl / reference
    if ratio < -0.20:
        return "CATASTROPHIC"
    if ratio < -0.10:
        return "SEVERE"
    if ratio < -0.05:
        return "MODERATE"
    if ratio < 0:
        return "MINOR"
    if ratio > 0.10:
        return "HIGHLY_POSITIVE"
    if ratio > 0.05:
        return "POSITIVE"
    return "NEUTRAL"


@dataclass(slots=True)
class StressRecommendation:
    priority: str
    type: str
    message: str
    action: str


@dataclass(slots=True)
class StressTestReport:
    scenarios: list[ScenarioResult]
    reference_value: float
    recommendations: list[StressRecommendation] = field(default_factory=list)

    @property
    def worst_case(self) -> ScenarioResult:
        return self.scenarios[0]

    @property
    def best_case(self) -> ScenarioResult:
        return self.scenarios[-1]

    @property
    def summary(self) -> str:
        severe = [s for s in self.scenarios if s.severity in SEVERE]
        profitable = [s for s in self.scenarios if s.total > 0]
        average = sum(s.total for s in self.scenarios) / len(self.scenarios)
        parts = [f"Tested {len(self.scenarios)} market scenarios"]
        if severe:
            parts.append(f"{len(severe)} scenarios result in severe losses")
        parts.append(f"{len(profitable)} scenarios are profitable")
        parts.append(f"Average outcome: {'+' if average > 0 else ''}${average:.0f}")
        return ". ".join(parts)

    @property
    def is_resilient(self) -> bool:
        return not any(s.severity in SEVERE for s in self.scenarios)


def _recommendations(results: list[ScenarioResult], greeks: PortfolioGreeks) -> list[StressRecommendation]:
    recs = []
    worst = results[0]
    if worst.severity in SEVERE:
        recs.append(StressRecommendation(
            priority="HIGH",
            type="HEDGE_DOWNSIDE",
            message=f"Worst case ({worst.name}) shows {worst.total:.0f} loss",
            action="Consider protective puts or reducing position sizes",
        ))

    if abs(greeks.gamma) > 10:
        direction = "positive" if greeks.gamma > 0 else "negative"
        recs.append(StressRecommendation(
            priority="MEDIUM",
            type="GAMMA_RISK",
            message=f"High {direction} gamma means accelerated P&L changes",
            action=(
                "Consider adding long options for gamma protection"
                if direction == "negative"
                else "Positive gamma benefits from volatility - can keep as-is"
            ),
        ))

    by_name = {r.name: r for r in results}
    slow_bleed = by_name.get(STRESS_SCENARIOS["SLOW_BLEED"].name)
    if slow_bleed is not None and slow_bleed.total < -100:
        recs.append(StressRecommendation(
            priority="MEDIUM",
            type="TIME_DECAY_RISK",
            message="Portfolio loses significantly in sideways market",
            action="Need directional movement soon or consider closing long options",
        ))

    vol_crush = by_name.get(STRESS_SCENARIOS["VOLATILITY_CRUSH"].name)
    if vol_crush is not None and vol_crush.total < -200:
        recs.append(StressRecommendation(
            priority="MEDIUM",
            type="VEGA_RISK",
            message="Vulnerable to IV collapse",
            action="Avoid holding through events (earnings, FOMC) that could crush IV",
        ))

    if not any(r.severity in SEVERE for r in results):
        recs.append(StressRecommendation(
            priority="LOW",
            type="WELL_POSITIONED",
            message="Portfolio shows resilience across scenarios",
            action="Current positioning appears balanced",
        ))
    return recs


def run_stress_test(
    greeks: PortfolioGreeks,
    underlying_price: float,
    scenarios: Optional[Iterable[Union[str, StressScenario]]] = None,
    account_size: Optional[float] = None,
) -> StressTestReport:
    """
    Run scenarios (names from STRESS_SCENARIOS or custom StressScenario objects).

    Unknown scenario names are skipped with a warning.

    Raises:
        ValueError: If no scenario could be resolved
    """
    reference = reference_value(greeks, account_size)
    results: list[ScenarioResult] = []
    for item in scenarios if scenarios is not None else STRESS_SCENARIOS:
        scenario = STRESS_SCENARIOS.get(item) if isinstance(item, str) else item
        if scenario is None:
            logger.warning(f"Unknown stress scenario: {item}")
            continue
        result = scenario_pnl(
            greeks,
            underlying_price,
            price_move_pct=scenario.price_move_pct,
            iv_change_pts=scenario.iv_change_pts,
            days=scenario.days_forward,
            name=scenario.name,
            description=scenario.description,
        )
        result.severity = categorize_severity(result.total, reference)
        results.append(result)

    if not results:
        raise ValueError("No stress scenarios to run")

    results.sort(key=lambda r: r.total)
    report = StressTestReport(
        scenarios=results,
        reference_value=reference,
        recommendations=_recommendations(results, greeks),
    )
    logger.debug(f"Stress test: worst={report.worst_case.name} ({report.worst_case.total:.2f})")
    return report
