import json
from typing import Dict, Iterable, Optional

from subtitle_agent.knowledge.storage import STORAGE_KEYS, KeyValueStore, MemoryStore
from subtitle_agent.utils.progress_log import log_progress


def filter_relevant(candidate_texts: Iterable[str], terms: Dict[str, str]) -> Dict[str, str]:
    """
    Return only glossary terms that appear in the given texts (case-insensitive).
    Keeps the injected glossary section small and batch-relevant.
    """
    haystack = "\n".join(candidate_texts).lower()
    return {term: translation for term, translation in terms.items() if term and term.lower() in haystack}


class GlossaryIndex:
    def __init__(self, storage: Optional[KeyValueStore] = None, log_path: Optional[str] = None):
        self.storage = storage if storage is not None else MemoryStore()
        self.log_path = log_path
        self.terms: Dict[str, str] = {}
        self._load_glossary()

    def _load_glossary(self):
        raw = self.storage.get(STORAGE_KEYS["PROPER_NOUNS"])
        if not raw:
            return
        try:
            loaded = json.loads(raw)
        except json.JSONDecodeError as exc:
            log_progress(self.log_path, "GLOSSARY", f"Stored glossary is malformed ({exc}). Starting empty.", "WARN")
            return
        if not isinstance(loaded, dict):
            log_progress(self.log_path, "GLOSSARY", "Stored glossary is not an object. Starting empty.", "WARN")
            return
        self.terms = {str(k): str(v) for k, v in loaded.items() if isinstance(v, str)}

    def save_glossary(self):
        self.storage.set(STORAGE_KEYS["PROPER_NOUNS"], json.dumps(self.terms, ensure_ascii=False))

    def merge_new(self, delta: Dict[str, str]) -> Dict[str, str]:
        """
        Add terms discovered in a batch response.
        Only adds keys that don't already exist (first translation wins, for consistency).
        Returns exactly the pairs that were accepted.
        """
        accepted: Dict[str, str] = {}
        for term, translation in (delta or {}).items():
            key = str(term).strip()
            value = str(translation).strip()
            if key and value and key not in self.terms:
                self.terms[key] = value
                accepted[key] = value
        if accepted:
            self.save_glossary()
        return accepted

    def rename(self, original: str, new_translation: str, store=None) -> int:
        """
        Explicit user correction: overwrite a term's translation and replace the
        old translation text with the new one in every already translated segment.
        Returns the number of segments changed.
        """
        old_translation = self.terms.get(original)
        self.terms[original] = new_translation
        self.save_glossary()
        if store is None or not old_translation:
            return 0
        return store.replace_in_translations(old_translation, new_translation)

    def set_term(self, original: str, translation: str):
        self.terms[original] = translation
        self.save_glossary()

    def remove_term(self, original: str) -> bool:
        if original not in self.terms:
            return False
        del self.terms[original]
        self.save_glossary()
        return True

    def relevant_to(self, texts: Iterable[str]) -> Dict[str, str]:
        return filter_relevant(texts, self.terms)

    def get_glossary_text(self) -> str:
        """
        Return a string representation of the full glossary.
        Format: "Term: translation" per line.
        """
        return "\n".join(f"{term}: {translation}" for term, translation in sorted(self.terms.items()))

    def get_term_count(self) -> int:
        return len(self.terms)

    def clear(self):
        """Clear all terms."""
        self.terms = {}
        self.storage.remove(STORAGE_KEYS["PROPER_NOUNS"])
