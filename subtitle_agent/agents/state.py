from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, TypedDict


class BatchState(TypedDict):
    """
    Represents the state of one batch moving through the translation graph.
    """
    batch: Any          # batching.Batch
    glossary: dict      # batch-relevant terms only

    # Node outputs
    messages: Optional[List[dict]]
    raw_response: Optional[str]
    result: Any         # parser.ParseResult


@dataclass
class Progress:
    current: int = 0
    total: int = 0
    percentage: int = 0


@dataclass
class TranslationState:
    """
    Observable progress of one batch-translate run.
    ``should_stop`` is the only field meant to be written from outside.
    """
    is_translating: bool = False
    should_stop: bool = False
    progress: Progress = field(default_factory=Progress)
    current_message: str = ""
    _listeners: List[Callable[["TranslationState"], None]] = field(default_factory=list, repr=False)

    def subscribe(self, listener: Callable[["TranslationState"], None]) -> None:
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def update(self, **fields) -> None:
        for name, value in fields.items():
            if name.startswith("_") or not hasattr(self, name):
                raise AttributeError(f"Unknown translation state field: {name}")
            setattr(self, name, value)
        self._notify()

    def update_progress(self, current: int, total: int) -> None:
        percentage = round(current / total * 100) if total > 0 else 0
        self.progress = Progress(current=current, total=total, percentage=percentage)
        self._notify()

    def reset(self, total: int) -> None:
        self.update(
            is_translating=True,
            should_stop=False,
            progress=Progress(current=0, total=total, percentage=0),
            current_message="Starting translation...",
        )

    def request_stop(self) -> None:
        """Cooperative cancellation, honoured at the next batch boundary."""
        self.update(should_stop=True)
