from termscheck_agent.fallback import (
    GENERIC_RISK_FACTORS,
    build_fallback_analysis,
    fallback_from_heuristics,
    placeholder_analysis,
)
from termscheck_agent.heuristics import score_text


def test_no_matches_gets_generic_bullets_and_three_factors():
    analysis = build_fallback_analysis("example.com", [], [], [], 20)
    assert analysis.is_fallback is True
    assert analysis.risk_score == 20
    assert analysis.summary.count("<li>") == 4
    assert "example.com may have terms and policies that warrant review." in analysis.summary
    assert [f.title for f in analysis.risk_factors] == [f.title for f in GENERIC_RISK_FACTORS]


def test_one_bullet_per_non_empty_tier_plus_advice():
    analysis = build_fallback_analysis("example.com", ["no refunds"], [], ["data protection", "right to delete"], 30)
    assert analysis.summary.count("<li>") == 4
    assert "example.com includes 1 high-risk terms" in analysis.summary
    assert "Includes 2 standard or low-risk terms" in analysis.summary
    assert "medium-risk" not in analysis.summary


def test_factor_counts_are_capped_per_tier():
    high = ["sell your data", "no refunds", "no liability", "waive rights"]
    medium = ["may share", "may collect", "may use"]
    analysis = build_fallback_analysis("example.com", high, medium, [], 90)
    levels = [f.level for f in analysis.risk_factors]
    assert levels == ["high", "high", "high", "medium", "medium"]
    assert analysis.risk_factors[0].title == 'Contains "sell your data"'


def test_padding_fills_up_to_three():
    analysis = build_fallback_analysis("example.com", ["no refunds"], [], [], 25)
    assert len(analysis.risk_factors) == 3
    assert analysis.risk_factors[0].level == "high"
    assert analysis.risk_factors[1].title == GENERIC_RISK_FACTORS[0].title
    assert analysis.risk_factors[2].title == GENERIC_RISK_FACTORS[1].title


def test_always_at_least_three_factors():
    for high in ([], ["a"], ["a", "b"], ["a", "b", "c", "d"]):
        for medium in ([], ["m"], ["m", "n", "o"]):
            analysis = build_fallback_analysis("example.com", high, medium, [], 50)
            assert len(analysis.risk_factors) >= 3


def test_from_heuristics_and_placeholder_carry_message():
    result = score_text("mandatory arbitration")
    analysis = fallback_from_heuristics("example.com", result, message="note")
    assert analysis.risk_score == 25
    assert analysis.message == "note"

    placeholder = placeholder_analysis("example.com", 20, "nothing found")
    assert placeholder.message == "nothing found"
    assert placeholder.risk_score == 20
    assert placeholder.domain == "example.com"
