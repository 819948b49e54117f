"""Analysis core: chunking, dispatch, parsing and aggregation."""

from auditor.analysis.aggregator import Aggregator, build_insights
from auditor.analysis.chunker import Chunker, ChunkLimits, ChunkStrategy
from auditor.analysis.dispatcher import BatchDispatcher
from auditor.analysis.parser import ResponseParser, fallback_analysis, fallback_score
from auditor.analysis.retry import RetryPolicy, retry_async
from auditor.analysis.tokens import TokenEstimator

__all__ = [
    "Aggregator",
    "BatchDispatcher",
    "Chunker",
    "ChunkLimits",
    "ChunkStrategy",
    "ResponseParser",
    "RetryPolicy",
    "TokenEstimator",
    "build_insights",
    "fallback_analysis",
    "fallback_score",
    "retry_async",
]
