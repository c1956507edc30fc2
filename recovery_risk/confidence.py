"""
Confidence scoring and contributor ranking for category scores
"""

from typing import Dict, List, Optional
import logging

from .schema import (Domain, RiskCategory, RiskCategoryScore, RiskConfig, RiskContributor)
from .domains import DomainResult
from .indices import determine_risk_tier
from .numeric import clamp, round_half_up

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 0.3
MAX_CONFIDENCE = 0.99

TOP_CONTRIBUTORS = {RiskCategory.OVERALL: 5}
DEFAULT_TOP_CONTRIBUTORS = 4

METHODOLOGY = {
    RiskCategory.INFECTION: "Composite: wound status, vitals, inflammatory markers, surgical factors",
    RiskCategory.FALL: "Age, mobility, medication, cognitive factors",
    RiskCategory.MENTAL_HEALTH: "Mood trends, engagement, social factors, psychiatric history",
    RiskCategory.MEDICATION: "Adherence rates, polypharmacy, cognitive factors",
}


class ConfidenceScorer:
    """Builds category scores with a data-completeness confidence and ranked contributors"""

    def __init__(self, config: RiskConfig):
        self.config = config

    def calculate_confidence(self, category: RiskCategory,
                             results: Dict[Domain, Optional[DomainResult]]) -> float:
        """
        Confidence grows with how much of the category's input was actually observed.
        Each domain's factor coverage is weighted by that domain's share of the category;
        a missing domain contributes nothing.
        """
        weights = self.config.category_weights.for_category(category)
        total_weight = weights.total()
        if total_weight <= 0:
            return MIN_CONFIDENCE

        covered = 0.0
        for domain in Domain:
            result = results.get(domain)
            if result is not None:
                covered += weights.for_domain(domain) * result.coverage
        completeness = covered / total_weight
        return clamp(0.5 + 0.5 * completeness, MIN_CONFIDENCE, MAX_CONFIDENCE)

    def rank_contributors(self, category: RiskCategory,
                          results: Dict[Domain, Optional[DomainResult]]) -> List[RiskContributor]:
        """Contributors ordered by their pull on this category's score"""
        weights = self.config.category_weights.for_category(category)
        scored = []
        for domain in Domain:
            result = results.get(domain)
            if result is None:
                continue
            domain_weight = weights.for_domain(domain)
            for contributor in result.contributors:
                impact = contributor.weight * contributor.normalized_contribution * domain_weight
                scored.append((impact, contributor))

        # sorted() is stable, so ties keep domain then factor order
        scored = sorted(scored, key=lambda item: item[0], reverse=True)
        limit = TOP_CONTRIBUTORS.get(category, DEFAULT_TOP_CONTRIBUTORS)
        return [contributor for _, contributor in scored[:limit]]

    def build_category_score(self, category: RiskCategory, score: float,
                             results: Dict[Domain, Optional[DomainResult]],
                             methodology: Optional[str] = None) -> RiskCategoryScore:
        reported = round_half_up(clamp(score), 1)
        return RiskCategoryScore(
            score=reported,
            tier=determine_risk_tier(reported),
            confidence=round(self.calculate_confidence(category, results), 3),
            top_contributors=tuple(self.rank_contributors(category, results)),
            methodology=methodology or METHODOLOGY.get(category),
        )
