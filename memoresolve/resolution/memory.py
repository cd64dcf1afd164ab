"""
Semantic-memory resolver.

Responsibilities:
- Resolve a memory reference for update/delete by vector search ranked with
  the hybrid score.
- Detect when a new contact or key-value memory restates one the user
  already has, and ask whether to update it or keep both.

Non-Responsibilities:
- No memory writes.
- No embedding storage.

Invariant:
A failing embedder or vault never blocks an insert: conflict detection
reports no conflict and the step resolves unchanged.
"""

from typing import List, Mapping, Optional, Sequence

from ..arguments import MemoryArguments
from ..errors import EmbeddingError
from ..logger import get_logger
from ..models import (
    ConflictMatch,
    Disambiguation,
    DisambiguationKind,
    ResolutionCandidate,
    ResolutionOutcome,
    Resolved,
    ResolverContext,
)
from ..normalize import subjects_overlap
from .base import DomainResolver
from .features import keyword_score
from .scoring import hybrid_rank
from .selection import Selection

logger = get_logger()

SEARCH_ACTIONS = ("update", "delete", "delete_many")
INSERT_ACTIONS = ("insert", "store")
CONFLICT_KINDS = ("contact", "kv")

INSERT_NEW = "__insert_new__"
OVERRIDE = "override"
INSERT = "insert"

PREVIEW_LENGTH = 100

CONFLICT_QUESTIONS = {
    "en": "You already have a similar memory:\n\"{existing}\"\n\n1. Update the existing memory\n2. Keep both",
    "he": "כבר שמור אצלך זיכרון דומה:\n\"{existing}\"\n\n1. לעדכן את הזיכרון הקיים\n2. לשמור את שניהם",
}
OPTION_LABELS = {
    "en": ("Update the existing memory", "Keep both"),
    "he": ("לעדכן את הזיכרון הקיים", "לשמור את שניהם"),
}


def preview(memory: Mapping) -> str:
    content = memory.get("content") or memory.get("text") or ""
    if len(content) > PREVIEW_LENGTH:
        return content[:PREVIEW_LENGTH] + "..."
    return content or "Memory"


def memory_subject(memory: Mapping) -> Optional[str]:
    if memory.get("subject"):
        return memory["subject"]
    metadata = memory.get("metadata")
    if isinstance(metadata, Mapping):
        return metadata.get("subject")
    return None


class MemoryResolver(DomainResolver):
    capability = "semantic-memory"
    resolved_actions = SEARCH_ACTIONS + INSERT_ACTIONS
    nouns = {"en": "memory", "he": "זיכרון"}

    def _resolve(self, action: str, arguments: MemoryArguments, context: ResolverContext) -> ResolutionOutcome:
        if action in INSERT_ACTIONS:
            return self._resolve_insert(arguments, context)
        return self._resolve_search(action, arguments, context)

    def _embed(self, text: str) -> Optional[List[float]]:
        embedder = self.services.embedder
        if embedder is None:
            logger.warning("No embedder configured", capability=self.capability)
            return None
        try:
            return embedder.embed(text)
        except EmbeddingError as e:
            logger.warning("Embedding failed", capability=self.capability, error=str(e))
            logger.record_lookup_failure(e.service)
            return None

    def _search(
        self,
        user_id: str,
        embedding: Sequence[float],
        min_similarity: float,
        kind: Optional[str] = None,
    ) -> List[Mapping]:
        vault = self.services.memory
        return self.lookup(
            vault.search if vault else None,
            user_id,
            embedding,
            min_similarity,
            self.config.memory_search_limit,
            kind=kind,
        )

    # Update / delete

    def _resolve_search(self, action: str, arguments: MemoryArguments, context: ResolverContext) -> ResolutionOutcome:
        if arguments.memory_id:
            return Resolved(arguments, (arguments.memory_id,))
        if arguments.memory_ids:
            return Resolved(arguments, tuple(arguments.memory_ids))

        search_text = arguments.query or arguments.content
        if not search_text:
            return self.clarify("No memory description provided", "Provide what the memory is about")

        embedding = self._embed(search_text)
        hits = [] if embedding is None else self._search(
            context.user_id, embedding, self.config.memory_search_similarity_min
        )
        ranked = hybrid_rank(search_text, hits, self.config.hybrid_vector_weight)
        candidates = [
            ResolutionCandidate(
                id=s.entity.get("id", ""),
                display_text=preview(s.entity),
                entity=s.entity,
                score=s.score,
                metadata={
                    "kind": s.entity.get("kind"),
                    "similarity": s.entity.get("similarity"),
                    "created_at": s.entity.get("created_at"),
                },
            )
            for s in ranked
        ]
        return self.choose(action, arguments, candidates, context, search_text)

    # Insert conflicts

    def detect_conflicts(
        self,
        user_id: str,
        content: str,
        kind: str,
        subject: Optional[str] = None,
    ) -> List[ConflictMatch]:
        """
        Existing memories the new one would restate.

        Only ``contact`` and ``kv`` memories are checked. Candidates must be
        the same kind with vector similarity at or above the strong-match
        floor. A ``kv`` memory with a subject must also share that subject;
        otherwise the content must overlap by keyword.
        """
        if kind not in CONFLICT_KINDS or not content:
            return []
        embedding = self._embed(content)
        if embedding is None:
            return []
        hits = self._search(user_id, embedding, self.config.strong_match_floor, kind=kind)

        use_subject = kind == "kv" and bool(subject)
        found = []
        for hit in hits:
            similarity = float(hit.get("similarity", 0.0))
            keywords = keyword_score(content, hit.get("content"))
            if use_subject:
                strong = subjects_overlap(subject, memory_subject(hit))
            else:
                strong = keywords >= self.config.keyword_score_min
            strong = strong and similarity >= self.config.strong_match_floor
            found.append(ConflictMatch(hit, similarity, keywords, strong))
        return [m for m in found if m.is_strong_match]

    def _resolve_insert(self, arguments: MemoryArguments, context: ResolverContext) -> ResolutionOutcome:
        if arguments.conflict_decision or arguments.kind not in CONFLICT_KINDS:
            return Resolved(arguments)
        conflicts = self.detect_conflicts(context.user_id, arguments.content, arguments.kind, arguments.subject)
        if not conflicts:
            return Resolved(arguments)

        best = conflicts[0]
        logger.info(
            "Memory conflict detected",
            user_id=context.user_id,
            kind=arguments.kind,
            target_id=best.candidate_memory.get("id"),
            similarity=round(best.similarity, 4),
        )
        language = "he" if context.language == "he" else "en"
        update_label, keep_label = OPTION_LABELS[language]
        existing = preview(best.candidate_memory)
        options = (
            ResolutionCandidate(
                id=best.candidate_memory.get("id", ""),
                display_text=f"{update_label}: {existing}",
                entity=best.candidate_memory,
                score=best.similarity,
                metadata={"conflict_option": OVERRIDE},
            ),
            ResolutionCandidate(
                id=INSERT_NEW,
                display_text=keep_label,
                entity={"content": arguments.content},
                score=0.0,
                metadata={"conflict_option": INSERT},
            ),
        )
        return Disambiguation(
            candidates=options,
            allow_multiple=False,
            question=CONFLICT_QUESTIONS[language].format(existing=existing),
            kind=DisambiguationKind.CONFLICT_OVERRIDE,
        )

    # Binding

    def apply_selection(
        self,
        selection: Selection,
        candidates: Sequence[ResolutionCandidate],
        original_arguments: MemoryArguments,
        allow_multiple: bool = False,
        kind: DisambiguationKind = DisambiguationKind.PICK_ONE,
        question: str = "",
        context: Optional[ResolverContext] = None,
    ) -> ResolutionOutcome:
        if kind == DisambiguationKind.CONFLICT_OVERRIDE and selection.select_all:
            # "both" answers the "Keep both" option
            by_option = {c.metadata.get("conflict_option"): c for c in candidates}
            if INSERT in by_option:
                return self.bind(original_arguments, [by_option[INSERT]])
        return super().apply_selection(
            selection, candidates, original_arguments, allow_multiple, kind, question, context
        )

    def bind(self, arguments: MemoryArguments, chosen: Sequence[ResolutionCandidate]) -> Resolved:
        option = chosen[0].metadata.get("conflict_option")
        if option == OVERRIDE:
            target = chosen[0].id
            return Resolved(arguments.evolve(conflict_decision=OVERRIDE, conflict_target_id=target), (target,))
        if option == INSERT:
            return Resolved(arguments.evolve(conflict_decision=INSERT, conflict_target_id=None))

        ids = tuple(c.id for c in chosen)
        changes = {"memory_id": ids[0]}
        if len(ids) > 1:
            changes["memory_ids"] = ids
        return Resolved(arguments.evolve(**changes), ids)
