"""Consolidated LLM system prompts for document control.

Both prompts demand JSON output; the response shape described here is
the one ``analysis/llm/schemas.py`` parses.
"""

from doccontrol.schemas import CandidateDocument, ContentAnalysis

# ── Phase 1: content analysis ─────────────────────────────────────

CONTENT_ANALYSIS_PROMPT = """\
You are a precise document analyzer. Extract ONLY what is explicitly \
stated in the document. Never infer, assume, or extrapolate. Every fact \
must carry a direct verbatim quote copied character-for-character from \
the document.

Return a JSON object:

{
  "primarySubject": {
    "domain": "feature | budget | timeline | technical | policy | process | specification | other",
    "specificArea": "the specific feature, area or topic addressed",
    "scope": "the specific aspect within that area"
  },
  "explicitFacts": [
    {
      "statement": "the factual statement",
      "confidence": 0.0-1.0 that it is explicitly stated,
      "sourceLocation": "e.g. Paragraph 2, Section 3",
      "verbatimQuote": "exact quote from the document"
    }
  ],
  "outOfScope": ["areas or topics the document does NOT address"],
  "statedBoundaries": ["explicit scope limitations stated in the document"]
}
"""


def build_content_prompt(
    content: str, file_name: str, max_chars: int
) -> str:
    """User message for the content analysis call."""
    return (
        f'DOCUMENT: "{file_name}"\n'
        "---\n"
        f"{content[:max_chars]}\n"
        "---\n\n"
        "Rules:\n"
        "1. Only extract facts that are EXPLICITLY stated.\n"
        "2. Include a verbatim quote as evidence for each fact.\n"
        "3. Identify what this document is specifically about.\n"
        "4. Note what is NOT addressed.\n"
        "5. Capture any stated limitations or boundaries."
    )


# ── Phase 2: surgical change proposals ────────────────────────────

CHANGE_PROPOSAL_PROMPT = """\
You are a surgical document editor. You make ONLY the minimum changes \
needed to bring an existing document in line with new, explicitly stated \
facts. You never expand scope, make improvements, or modify anything \
without evidence. Every change must trace directly to a quoted fact.

Return a JSON object:

{
  "proposedChanges": [
    {
      "sectionName": "name or description of the section",
      "originalText": "EXACT text from the existing document to replace",
      "proposedText": "replacement text",
      "sourceQuote": "verbatim quote from the uploaded document",
      "sourceLocation": "where in the uploaded document",
      "subjectMatchScore": 0.0-1.0,
      "scopeJustification": {
        "withinPrimarySubject": true,
        "withinSpecificArea": true,
        "withinStatedScope": true,
        "crossesFeatureBoundary": false
      },
      "nonImpact": ["what this change does NOT affect"],
      "reasoning": "one sentence"
    }
  ],
  "noChangesReason": "if nothing is proposed, why"
}

originalText must be copied with exact precision and be as short as \
possible while still unique. If the existing text does not contradict \
the new facts, propose nothing.
"""


def build_change_prompt(
    analysis: ContentAnalysis,
    candidate: CandidateDocument,
    file_name: str,
    max_chars: int,
) -> str:
    """User message for one candidate document."""
    subject = analysis.primary_subject
    facts = "\n".join(
        f'{i}. "{f.statement}" [Source: {f.verbatim_quote}]'
        for i, f in enumerate(analysis.explicit_facts, 1)
    )
    out_of_scope = ", ".join(analysis.out_of_scope) or "none stated"
    return (
        f'UPLOADED DOCUMENT: "{file_name}"\n'
        f"PRIMARY SUBJECT: {subject.domain} > "
        f"{subject.specific_area} > {subject.scope}\n"
        f"OUT OF SCOPE: {out_of_scope}\n\n"
        f"EXPLICIT FACTS:\n{facts}\n\n"
        "---\n\n"
        f'EXISTING DOCUMENT: "{candidate.title}"\n'
        f"{candidate.content[:max_chars]}"
    )
