"""LLM-backed ContentAnalysisService.

Two phases behind one ``analyze`` call:
  1. Content analysis of the upload (subject, facts, boundaries).
     Failure here is fatal for the run.
  2. Surgical change proposals, one call per ranked candidate document,
     with bounded concurrency. A failed candidate is logged and skipped.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, cast

from doccontrol.analysis.adapter import parse_content_analysis
from doccontrol.analysis.llm._llm_call import call_model_chain
from doccontrol.config import Settings
from doccontrol.prompts import (
    CHANGE_PROPOSAL_PROMPT,
    CONTENT_ANALYSIS_PROMPT,
    build_change_prompt,
    build_content_prompt,
)
from doccontrol.repositories.protocols import AnalysisRequest
from doccontrol.resilience.errors import MalformedAnalysisResponseError
from doccontrol.schemas import CandidateDocument, ContentAnalysis

logger = logging.getLogger(__name__)

_WORD = re.compile(r"[a-z0-9]{3,}")


def _terms(text: str) -> set[str]:
    return set(_WORD.findall(text.lower()))


def rank_candidates(
    analysis: ContentAnalysis,
    candidates: list[CandidateDocument],
    limit: int,
) -> list[CandidateDocument]:
    """Order candidates by term overlap with the analysis, keep ``limit``.

    Ties keep the store's order, so zero-overlap documents still fill
    the list when there are fewer candidates than the cap.
    """
    subject = analysis.primary_subject
    query = _terms(
        " ".join([
            subject.specific_area,
            subject.scope,
            *(f.statement for f in analysis.explicit_facts),
            *(f.verbatim_quote for f in analysis.explicit_facts),
        ])
    )
    scored = [
        (len(query & _terms(f"{c.title} {c.content}")), idx, c)
        for idx, c in enumerate(candidates)
    ]
    scored.sort(key=lambda t: (-t[0], t[1]))
    return [c for _, _, c in scored[:limit]]


def _load_json(raw: str, component: str) -> dict[str, Any]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        logger.warning(
            "event=analysis_parse_failed component=%s response_len=%d",
            component,
            len(raw),
        )
        msg = f"{component} response is not valid JSON"
        raise MalformedAnalysisResponseError(msg) from exc
    if not isinstance(data, dict):
        msg = f"{component} response is not a JSON object"
        raise MalformedAnalysisResponseError(msg)
    return cast(dict[str, Any], data)


class LiteLLMAnalysisService:
    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()

    async def analyze(self, request: AnalysisRequest) -> dict[str, Any]:
        cfg = self._settings
        content_result = await call_model_chain(
            cfg.litellm_model_chain,
            [
                {"role": "system", "content": CONTENT_ANALYSIS_PROMPT},
                {
                    "role": "user",
                    "content": build_content_prompt(
                        request.uploaded_text,
                        request.file_name,
                        cfg.max_uploaded_chars,
                    ),
                },
            ],
            cfg.llm_timeout_seconds,
            component="content_analysis",
        )
        raw_content = _load_json(
            content_result.content, "content_analysis"
        )
        analysis = parse_content_analysis(raw_content)

        ranked = rank_candidates(
            analysis, request.candidates, cfg.max_candidate_documents
        )
        logger.info(
            "event=candidates_ranked total=%d selected=%d facts=%d",
            len(request.candidates),
            len(ranked),
            len(analysis.explicit_facts),
        )

        semaphore = asyncio.Semaphore(cfg.llm_max_concurrency)

        async def propose(
            candidate: CandidateDocument,
        ) -> list[dict[str, Any]]:
            async with semaphore:
                return await self._propose_for(
                    analysis, candidate, request.file_name
                )

        outcomes = await asyncio.gather(
            *(propose(c) for c in ranked), return_exceptions=True
        )

        proposals: list[dict[str, Any]] = []
        for candidate, outcome in zip(ranked, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.warning(
                    "event=change_proposal_failed doc=%s error=%s",
                    candidate.id,
                    outcome,
                )
                continue
            proposals.extend(outcome)

        return {
            "contentAnalysis": raw_content,
            "proposedChanges": proposals,
        }

    async def _propose_for(
        self,
        analysis: ContentAnalysis,
        candidate: CandidateDocument,
        file_name: str,
    ) -> list[dict[str, Any]]:
        cfg = self._settings
        result = await call_model_chain(
            cfg.litellm_model_chain,
            [
                {"role": "system", "content": CHANGE_PROPOSAL_PROMPT},
                {
                    "role": "user",
                    "content": build_change_prompt(
                        analysis,
                        candidate,
                        file_name,
                        cfg.max_candidate_chars,
                    ),
                },
            ],
            cfg.llm_timeout_seconds,
            component="change_proposal",
        )
        data = _load_json(result.content, "change_proposal")
        changes = data.get("proposedChanges", [])
        if not isinstance(changes, list):
            return []
        if not changes and data.get("noChangesReason"):
            logger.debug(
                "event=no_changes doc=%s reason=%s",
                candidate.id,
                data["noChangesReason"],
            )
        # The model never sees document ids; stamp the target here.
        return [
            {**c, "documentId": candidate.id}
            for c in cast(list[Any], changes)
            if isinstance(c, dict)
        ]
