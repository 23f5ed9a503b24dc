"""
orchestrator.py - Drive batch translation over a SegmentStore.

Batches run strictly in order, one model call at a time. Per batch:
    1. Plan       - window + bounded neighbouring context
    2. Translate  - prompt -> model call -> parse (agents.workflow graph)
    3. Reconcile  - write accepted translations, force absent indices to the
                    missing sentinel, merge first-seen glossary terms
    4. Cool down  - fixed delay, longer after a failed call

Cancellation is cooperative: ``should_stop`` is checked at the top of each
batch and never interrupts an in-flight model call.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Sequence

from subtitle_agent.agents.client import ModelCallError
from subtitle_agent.agents.parser import Anomaly, reconcile_indices
from subtitle_agent.agents.prompts import PromptBuilder, build_retranslate_messages
from subtitle_agent.agents.state import TranslationState
from subtitle_agent.agents.workflow import build_graph, initial_state
from subtitle_agent.batching import Batch, plan_batches
from subtitle_agent.knowledge.glossary import GlossaryIndex
from subtitle_agent.segments import ERROR_SENTINEL, MISSING_SENTINEL, Segment, SegmentStore
from subtitle_agent.utils.progress_log import log_progress

DEFAULT_BATCH_SIZE = 10
DEFAULT_CONTEXT_SIZE = 5


@dataclass
class RunSummary:
    batches_total: int = 0
    batches_attempted: int = 0
    batches_failed: int = 0
    stopped: bool = False
    anomalies: list[Anomaly] = field(default_factory=list)


class TranslationOrchestrator:
    def __init__(
        self,
        store: SegmentStore,
        glossary: GlossaryIndex,
        model_caller: Callable[[list[dict]], str],
        prompt_builder: PromptBuilder | None = None,
        state: TranslationState | None = None,
        success_delay: float = 0.5,
        failure_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        log_path: str | None = None,
    ):
        self.store = store
        self.glossary = glossary
        self.model_caller = model_caller
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.state = state or TranslationState()
        self.success_delay = success_delay
        self.failure_delay = failure_delay
        self.sleep = sleep
        self.log_path = log_path
        self.app = build_graph(model_caller, self.prompt_builder)

    def request_stop(self) -> None:
        self.state.request_stop()
        log_progress(self.log_path, "STOP", "Stop requested, finishing current batch")

    def run(
        self,
        segments: Sequence[Segment] | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        context_size: int = DEFAULT_CONTEXT_SIZE,
    ) -> RunSummary:
        """Translate ``segments`` (default: the whole store) batch by batch.

        Context always comes from the store order, so a subset keeps its
        real neighbours.
        """
        segments = list(self.store) if segments is None else list(segments)
        batches = plan_batches(segments, batch_size, context_size, context_source=list(self.store))
        summary = RunSummary(batches_total=len(batches))
        total = len(segments)
        processed = 0

        self.state.reset(total)
        log_progress(
            self.log_path,
            "TRANSLATION",
            f"{total} segments -> {len(batches)} batches (batch size {batch_size}, context {context_size})",
        )
        try:
            for batch in batches:
                if self.state.should_stop:
                    summary.stopped = True
                    log_progress(
                        self.log_path,
                        "TRANSLATION",
                        f"Stopped before batch {batch.number}/{batch.total}",
                        "WARN",
                    )
                    break

                summary.batches_attempted += 1
                if self._translate_batch(batch, summary):
                    self.sleep(self.success_delay)
                else:
                    summary.batches_failed += 1
                    self.sleep(self.failure_delay)

                processed += len(batch.items)
                self.state.update_progress(processed, total)
                self.state.update(
                    current_message=f"Processed {processed} / {total} segments ({self.state.progress.percentage}%)"
                )
        finally:
            self.state.update(is_translating=False, current_message="Translation finished")

        log_progress(
            self.log_path,
            "TRANSLATION",
            f"Done: {summary.batches_attempted}/{summary.batches_total} batches attempted, "
            f"{summary.batches_failed} failed, {self.store.missing_count()} segments missing",
        )
        return summary

    def _translate_batch(self, batch: Batch, summary: RunSummary) -> bool:
        label = f"BATCH {batch.number}/{batch.total}"
        glossary = self.glossary.relevant_to(batch.texts())
        log_progress(
            self.log_path,
            label,
            f"Translating segments {batch.items[0].index}-{batch.items[-1].index}, "
            f"{len(batch.pre_context) + len(batch.post_context)} context, {len(glossary)} glossary terms...",
        )

        try:
            result = self.app.invoke(initial_state(batch, glossary))["result"]
        except ModelCallError as exc:
            for segment in batch.items:
                if segment.missing:
                    self.store.mark_missing(segment.index, ERROR_SENTINEL)
            log_progress(self.log_path, label, f"FAILED: {exc}. Continuing with next batch.", "ERR")
            return False

        anomalies = result.anomalies + reconcile_indices(batch.indices(), result.translations)
        for segment in batch.items:
            text = result.translations.get(segment.index, "")
            if text.strip():
                self.store.set_translation(segment.index, text)
            else:
                self.store.mark_missing(segment.index, MISSING_SENTINEL)

        accepted = self.glossary.merge_new(result.glossary_delta)

        summary.anomalies.extend(anomalies)
        for anomaly in anomalies:
            log_progress(self.log_path, label, anomaly.describe(), "WARN")
        if accepted:
            terms = ", ".join(f"{k} -> {v}" for k, v in accepted.items())
            log_progress(self.log_path, label, f"{len(accepted)} new glossary terms: {terms}")
        return True

    def retry_missing(
        self,
        segments: Sequence[Segment] | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        context_size: int = DEFAULT_CONTEXT_SIZE,
    ) -> list[Segment]:
        """Re-run every segment still flagged missing as a fresh, smaller job."""
        pool = list(self.store) if segments is None else list(segments)
        selected = [segment for segment in pool if segment.missing]
        if not selected:
            log_progress(self.log_path, "RETRY", "No missing segments")
            return selected
        log_progress(self.log_path, "RETRY", f"Retrying {len(selected)} missing segments")
        self.run(selected, batch_size=batch_size, context_size=context_size)
        return selected

    def retranslate(self, index: int, with_context: bool = True) -> str:
        """Re-translate one segment on explicit request; model errors propagate."""
        segment = self.store.get(index)
        previous, following = self.store.neighbours(index) if with_context else (None, None)
        messages = build_retranslate_messages(
            segment,
            previous=previous,
            following=following,
            custom_instruction=self.prompt_builder.custom_instruction,
        )
        text = self.model_caller(messages).strip()
        if not text:
            raise ModelCallError(f"Empty retranslation for segment {index}")
        self.store.set_translation(index, text)
        log_progress(self.log_path, "RETRANSLATE", f"Segment {index} updated")
        return text
