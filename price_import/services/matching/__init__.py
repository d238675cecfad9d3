"""Product matching: strategies and the first-match-wins chain."""
from price_import.services.matching.matcher import (
    CandidateEntry,
    CandidatePool,
    MatcherStrategy,
    PriorMappingMatcher,
    ExactCodeMatcher,
)
from price_import.services.matching.fuzzy import FuzzyNameMatcher, escalate, build_ngrams
from price_import.services.matching.chain import MatcherChain, create_matcher_chain

__all__ = [
    "CandidateEntry",
    "CandidatePool",
    "MatcherStrategy",
    "PriorMappingMatcher",
    "ExactCodeMatcher",
    "FuzzyNameMatcher",
    "escalate",
    "build_ngrams",
    "MatcherChain",
    "create_matcher_chain",
]
