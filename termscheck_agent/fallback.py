from __future__ import annotations

from html import escape

from .models import Analysis, HeuristicResult, RiskFactor

MIN_RISK_FACTORS = 3
MAX_HIGH_FACTORS = 3
MAX_MEDIUM_FACTORS = 2

GENERIC_RISK_FACTORS: tuple[RiskFactor, ...] = (
    RiskFactor(
        title="Limited Analysis Available",
        description="Could not perform full analysis of terms, which may hide potentially concerning clauses.",
        level="medium",
    ),
    RiskFactor(
        title="Data Collection",
        description="Most websites collect some form of user data, which poses inherent privacy risks.",
        level="medium",
    ),
    RiskFactor(
        title="Third-Party Sharing",
        description="Many services share data with third parties for various purposes including analytics and advertising.",
        level="medium",
    ),
)

# Messages attached to degraded analyses.
NO_DOCUMENTS_MESSAGE = "No policy documents found on this website."
NO_CONTENT_MESSAGE = "No policy content could be retrieved. The site may not have accessible policies."
TIMEOUT_MESSAGE = "Analysis timed out. The policies may be difficult to locate or process."
ANALYSIS_ERROR_MESSAGE = "Error during analysis. Try again or check settings."
API_FAILURE_MESSAGE = "OpenAI API analysis failed. Using basic analysis instead."

NO_DOCUMENTS_SCORE = 20
NO_CONTENT_SCORE = 20
TIMEOUT_SCORE = 20
ANALYSIS_ERROR_SCORE = 30


def _summary_points(domain: str, high: list[str], medium: list[str], low: list[str]) -> list[str]:
    points: list[str] = []
    if high:
        points.append(f"{domain} includes {len(high)} high-risk terms that may affect your privacy or rights.")
    if medium:
        points.append(f"Contains {len(medium)} medium-risk terms related to data usage and tracking.")
    if low:
        points.append(f"Includes {len(low)} standard or low-risk terms common in most services.")
    if not points:
        points.append(f"{domain} may have terms and policies that warrant review.")
        points.append("Basic analysis could not identify specific risk patterns.")

    points.append("Be cautious about how your data may be used or shared with third parties.")
    points.append("Consider reviewing the full terms to understand all implications before agreeing.")
    return points


def build_fallback_analysis(
    domain: str,
    high: list[str],
    medium: list[str],
    low: list[str],
    risk_score: int,
    *,
    message: str | None = None,
) -> Analysis:
    """Presentable analysis from heuristic matches alone (``is_fallback`` is always set)."""
    points = _summary_points(domain, high, medium, low)
    summary = "<ul>" + "".join(f"<li>{escape(p)}</li>" for p in points) + "</ul>"

    factors: list[RiskFactor] = []
    for match in high[:MAX_HIGH_FACTORS]:
        factors.append(RiskFactor(
            title=f'Contains "{match}"',
            description="This pattern typically indicates higher risk to user privacy or rights.",
            level="high",
        ))
    for match in medium[:MAX_MEDIUM_FACTORS]:
        factors.append(RiskFactor(
            title=f'Contains "{match}"',
            description="This pattern indicates moderate concern for user privacy.",
            level="medium",
        ))

    for generic in GENERIC_RISK_FACTORS:
        if len(factors) >= MIN_RISK_FACTORS:
            break
        factors.append(generic.model_copy())

    return Analysis(
        domain=domain,
        risk_score=max(0, min(100, int(risk_score))),
        summary=summary,
        risk_factors=factors,
        is_fallback=True,
        message=message,
    )


def fallback_from_heuristics(domain: str, result: HeuristicResult, *, message: str | None = None) -> Analysis:
    return build_fallback_analysis(
        domain,
        result.high_risk_matches,
        result.medium_risk_matches,
        result.low_risk_matches,
        result.risk_score,
        message=message,
    )


def placeholder_analysis(domain: str, risk_score: int, message: str) -> Analysis:
    """Generic analysis when no text could be scored at all."""
    return build_fallback_analysis(domain, [], [], [], risk_score, message=message)
