from .engine import SCOPES, SearchCandidate, SearchEngine, SearchResult, dedup
from .scoring import score_candidate
