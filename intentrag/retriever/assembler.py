"""
Result Assembler

Groups the final ranked chunks under the intent that produced the kept
instance and renders the textual context handed to the answer generator.
"""

import logging
from typing import Dict, List, Optional, Sequence

from ..common.models import RetrievalResult, RetrievedChunk
from ..intent.tree import IntentKind, NodeScore

logger = logging.getLogger("intentrag.retriever.assembler")

MULTI_CHANNEL_KEY = "multi_channel"

RULES_HEADER = "#### Answer rules"
SNIPPETS_HEADER = "#### Knowledge snippets"


class ResultAssembler:
    def assemble(
        self, chunks: Sequence[RetrievedChunk], intents: Sequence[NodeScore]
    ) -> RetrievalResult:
        """
        Build the ``RetrievalResult`` for one question.

        Chunks carrying an intent code stay with that intent. Chunks without
        one (keyword / global channels) go to the best KB intent, or under
        ``MULTI_CHANNEL_KEY`` when no KB intent was selected.
        """
        if not chunks:
            return RetrievalResult.empty(intents=list(intents))

        selected = {ns.code for ns in intents}
        fallback = _fallback_key(intents)

        grouped: Dict[str, List[RetrievedChunk]] = {}
        for chunk in chunks:
            key = chunk.intent_code if chunk.intent_code in selected else fallback
            grouped.setdefault(key, []).append(chunk)

        ordered: Dict[str, List[RetrievedChunk]] = {}
        for ns in intents:
            if ns.code in grouped:
                ordered[ns.code] = grouped[ns.code]
        if MULTI_CHANNEL_KEY in grouped:
            ordered[MULTI_CHANNEL_KEY] = grouped[MULTI_CHANNEL_KEY]

        context = self.render(ordered, intents)
        logger.info(
            "Assembled %d chunks into %d group(s): %s",
            len(chunks), len(ordered),
            ", ".join(f"{k}={len(v)}" for k, v in ordered.items()),
        )
        return RetrievalResult(grouped_context=context, intent_chunks=ordered, intents=list(intents))

    def render(
        self, grouped: Dict[str, List[RetrievedChunk]], intents: Sequence[NodeScore]
    ) -> str:
        nodes = {ns.code: ns.node for ns in intents}
        sections = []
        for code, chunks in grouped.items():
            if not chunks:
                continue
            node = nodes.get(code)
            sections.append(
                render_section(
                    title=(node.full_path or node.name) if node else None,
                    prompt_snippet=node.prompt_snippet if node else None,
                    chunks=chunks,
                )
            )
        return "\n\n".join(sections)


def _fallback_key(intents: Sequence[NodeScore]) -> str:
    for ns in intents:
        if ns.node.kind == IntentKind.KB:
            return ns.code
    return MULTI_CHANNEL_KEY


def render_section(
    title: Optional[str], prompt_snippet: Optional[str], chunks: Sequence[RetrievedChunk]
) -> str:
    parts = []
    if title:
        parts.append(f"### {title}")
    if prompt_snippet and prompt_snippet.strip():
        parts.append(f"{RULES_HEADER}\n{prompt_snippet.strip()}")
    body = "\n\n".join(c.text.strip() for c in chunks)
    parts.append(f"{SNIPPETS_HEADER}\n````text\n{body}\n````")
    return "\n\n".join(parts)


def render_sub_question(question: str, context: str) -> str:
    return f"---\n**Sub-question**: {question}\n\n**Related documents**:\n{context}"
