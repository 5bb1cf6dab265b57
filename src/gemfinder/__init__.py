__version__ = "0.1.0"

from .models import Category, MarketSnapshot, OutcomeKind, RunOutcome, ScoredToken
from .pipeline import FallbackController, GemFinder, Presenter
from .ranking import RankKey, RankingState, filter_tokens, rank
from .scoring import ScoringStrategy, score_fallback, score_population

__all__ = [
    "__version__", "GemFinder", "FallbackController", "Presenter",
    "MarketSnapshot", "ScoredToken", "Category", "RunOutcome", "OutcomeKind",
    "RankKey", "RankingState", "rank", "filter_tokens",
    "ScoringStrategy", "score_population", "score_fallback",
]
