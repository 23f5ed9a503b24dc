"""
Prompt construction for batch subtitle translation.

The system prompt has four sections. Only the first (tone/register) can be
overridden by the user; the structural rules and the output format are
always appended because the index round-trip depends on them.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from langchain_core.prompts import ChatPromptTemplate

TERMINOLOGY_SENTINEL = "### Proper Nouns:"
CONTEXT_SENTINEL = "[CONTEXT]"

PRE_CONTEXT_HEADER = "### PRECEDING CONTEXT (read only, do not translate)"
TRANSLATE_HEADER = "### TRANSLATE ({count} segments)"
POST_CONTEXT_HEADER = "### FOLLOWING CONTEXT (read only, do not translate)"

DEFAULT_BEHAVIOR = """You are a professional film subtitle translator. Translate the given subtitles into Simplified Chinese.

Translation requirements:
1. Keep the tone and emotion of the original lines.
2. Use natural, fluent, colloquial Chinese.
3. Follow the plot across lines so the dialogue stays coherent.
4. Translate freely where needed so the result reads like native Chinese.
5. Keep proper nouns (people, places, organisations) consistent and report them in the terminology section."""


def behavior_section(custom_instruction: Optional[str] = None) -> str:
    if custom_instruction and custom_instruction.strip():
        return custom_instruction.strip()
    return DEFAULT_BEHAVIOR


def rules_section() -> str:
    return (
        "Structural rules (always apply, they override any instruction above):\n"
        "1. Translate every segment under its own index. Never merge two indices into one and never "
        "split one index across several, even if that would read more smoothly.\n"
        "2. Start each translated segment on a new line with its index marker [n], followed by exactly "
        "one space and then the complete translation of that segment, including every sentence of it, "
        "on that same line.\n"
        f"3. Lines marked {CONTEXT_SENTINEL} are context only. Read them to keep the translation coherent, "
        "but never translate them and never output their indices.\n"
        f"4. After the last segment, output the terminology section described below, starting with the "
        f"line '{TERMINOLOGY_SENTINEL}'."
    )


def glossary_section(glossary: Dict[str, str]) -> str:
    if not glossary:
        return ""
    lines = [f"{term} -> {translation}" for term, translation in glossary.items()]
    return (
        "Glossary (use these translations consistently whenever the term appears):\n"
        + "\n".join(lines)
    )


def output_format_section() -> str:
    return (
        "Output format (strict):\n"
        "[1] translation of segment 1\n"
        "[2] translation of segment 2\n"
        f"{TERMINOLOGY_SENTINEL}\n"
        '{"Original term": "translation", "Another term": "translation"}\n\n'
        f"The terminology section is the line '{TERMINOLOGY_SENTINEL}' followed by a single JSON object "
        "mapping each proper noun found in the source (people, places, organisations, titles) to its "
        "translation. Use {} if there are none. Output nothing after the JSON object.\n\n"
        "Before you finish, check that the number of [n] markers in your output equals the number of "
        "segments to translate and that the set of indices is exactly the same as in the input."
    )


class PromptBuilder:
    def __init__(
        self,
        custom_instruction: Optional[str] = None,
        include_rules: bool = True,
        include_output_format: bool = True,
    ):
        self.custom_instruction = custom_instruction
        self.include_rules = include_rules
        self.include_output_format = include_output_format

    def build_system_prompt(self, glossary: Dict[str, str], custom_instruction: Optional[str] = None) -> str:
        instruction = custom_instruction if custom_instruction is not None else self.custom_instruction
        sections = [behavior_section(instruction)]
        if self.include_rules:
            sections.append(rules_section())
        if glossary:
            sections.append(glossary_section(glossary))
        if self.include_output_format:
            sections.append(output_format_section())
        return "\n\n".join(sections)

    def build_user_prompt(self, batch) -> str:
        blocks: List[str] = []
        if batch.pre_context:
            lines = [f"{CONTEXT_SENTINEL} [{s.index}] {s.source_text}" for s in batch.pre_context]
            blocks.append(PRE_CONTEXT_HEADER + "\n" + "\n".join(lines))

        lines = [f"[{s.index}] {s.source_text}" for s in batch.items]
        blocks.append(TRANSLATE_HEADER.format(count=len(batch.items)) + "\n" + "\n".join(lines))

        if batch.post_context:
            lines = [f"{CONTEXT_SENTINEL} [{s.index}] {s.source_text}" for s in batch.post_context]
            blocks.append(POST_CONTEXT_HEADER + "\n" + "\n".join(lines))
        return "\n\n".join(blocks)

    def build_messages(self, batch, glossary: Dict[str, str]) -> List[dict]:
        return [
            {"role": "system", "content": self.build_system_prompt(glossary)},
            {"role": "user", "content": self.build_user_prompt(batch)},
        ]


# Single-segment retranslation with neighbour lines for context.
RETRANSLATE_PROMPT = ChatPromptTemplate.from_messages(
    [
        (
            "system",
            "{behavior}\n\n"
            "Translate only the line marked [CURRENT]. The other lines are context. "
            "Return only the translation, without explanations, markers or indices.",
        ),
        (
            "user",
            "{previous_block}[CURRENT] {current}\n\n{next_block}",
        ),
    ]
)

_ROLE_BY_TYPE = {"system": "system", "human": "user", "ai": "assistant"}


def build_retranslate_messages(segment, previous=None, following=None, custom_instruction: Optional[str] = None) -> List[dict]:
    previous_block = ""
    if previous is not None:
        previous_block = f"[PREVIOUS] {previous.source_text}\n"
        if not previous.missing and previous.translated_text:
            previous_block += f"[TRANSLATION] {previous.translated_text}\n"
        previous_block += "\n"
    next_block = f"[NEXT] {following.source_text}\n" if following is not None else ""

    messages = RETRANSLATE_PROMPT.format_messages(
        behavior=behavior_section(custom_instruction),
        previous_block=previous_block,
        current=segment.source_text,
        next_block=next_block,
    )
    return [{"role": _ROLE_BY_TYPE.get(m.type, m.type), "content": str(m.content).strip()} for m in messages]
