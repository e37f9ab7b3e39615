"""LLM-backed content analysis: guarded calls and raw response schemas."""

from doccontrol.analysis.llm._llm_call import (
    LLMCallResult,
    call_model_chain,
    guarded_llm_call,
)
from doccontrol.analysis.llm.schemas import (
    RawAnalysisResponse,
    RawContentAnalysis,
    RawProposedEdit,
)

__all__ = [
    "LLMCallResult",
    "RawAnalysisResponse",
    "RawContentAnalysis",
    "RawProposedEdit",
    "call_model_chain",
    "guarded_llm_call",
]
