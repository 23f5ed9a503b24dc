"""
main.py - Command line entry point.

Usage:
    python -m subtitle_agent.main translate --source "episode01.txt"
    python -m subtitle_agent.main translate --source "data/output/episode01_segments.json"   (retry missing only)
    python -m subtitle_agent.main glossary list
    python -m subtitle_agent.main glossary rename "Rome" "罗马" --segments "data/output/episode01_segments.json"
"""

import argparse
import json
import os
import re
import sys
from datetime import datetime

from tqdm import tqdm

from subtitle_agent.agents.client import ModelCaller
from subtitle_agent.agents.prompts import PromptBuilder
from subtitle_agent.knowledge.glossary import GlossaryIndex
from subtitle_agent.knowledge.storage import STORAGE_KEYS, JsonFileStore
from subtitle_agent.orchestrator import DEFAULT_BATCH_SIZE, DEFAULT_CONTEXT_SIZE, TranslationOrchestrator
from subtitle_agent.segments import SegmentStore
from subtitle_agent.utils.config_loader import load_config, section


def _split_units(text: str) -> list[str]:
    return [part.strip() for part in re.split(r"\n\s*\n+", text) if part.strip()]


def load_segments(source_path: str) -> SegmentStore:
    """Plain text splits on blank lines; JSON is a previously written segments file."""
    with open(source_path, "r", encoding="utf-8") as f:
        content = f.read()
    if source_path.lower().endswith(".json"):
        records = json.loads(content)
        if isinstance(records, dict):
            records = records.get("segments", [])
        return SegmentStore.from_records(records)
    return SegmentStore.from_texts(_split_units(content))


def write_outputs(store: SegmentStore, output_dir: str, base_name: str) -> tuple[str, str]:
    os.makedirs(output_dir, exist_ok=True)
    segments_path = os.path.join(output_dir, f"{base_name}_segments.json")
    text_path = os.path.join(output_dir, f"{base_name}_translated.txt")
    with open(segments_path, "w", encoding="utf-8") as f:
        json.dump({"segments": store.to_records()}, f, ensure_ascii=False, indent=2)
    with open(text_path, "w", encoding="utf-8") as f:
        f.write(store.clean_text())
    return segments_path, text_path


def _open_storage(config: dict) -> JsonFileStore:
    storage_cfg = section(config, "storage")
    return JsonFileStore(
        path=str(storage_cfg.get("path", "data/storage.json")),
        namespace=str(storage_cfg.get("namespace", "subtitle_translator_")),
    )


def _base_name(source_path: str) -> str:
    base = os.path.splitext(os.path.basename(source_path))[0]
    return base[: -len("_segments")] if base.endswith("_segments") else base


def run_translate(args, config: dict) -> int:
    translation_cfg = section(config, "translation")
    storage = _open_storage(config)

    if args.save_settings:
        if args.api_key:
            storage.set(STORAGE_KEYS["API_KEY"], args.api_key)
        if args.instruction is not None:
            storage.set(STORAGE_KEYS["CUSTOM_PROMPT"], args.instruction)

    api_key = args.api_key or storage.get(STORAGE_KEYS["API_KEY"])
    instruction = args.instruction
    if instruction is None:
        instruction = storage.get(STORAGE_KEYS["CUSTOM_PROMPT"]) or translation_cfg.get("custom_instruction") or None

    batch_size = args.batch_size or int(translation_cfg.get("batch_size", DEFAULT_BATCH_SIZE))
    context_size = args.context_size
    if context_size is None:
        context_size = int(translation_cfg.get("context_size", DEFAULT_CONTEXT_SIZE))
    retry_rounds = args.retry_rounds
    if retry_rounds is None:
        retry_rounds = int(translation_cfg.get("retry_rounds", 1))
    if batch_size <= 0 or context_size < 0:
        print("Error: --batch-size must be positive and --context-size non-negative", file=sys.stderr)
        return 1

    store = load_segments(args.source)
    if not len(store):
        print(f"Error: no segments found in {args.source}", file=sys.stderr)
        return 1

    output_dir = args.output or str(section(config, "directories").get("output", "data/output"))
    os.makedirs(output_dir, exist_ok=True)
    base_name = _base_name(args.source)
    log_path = os.path.join(output_dir, f"{base_name}_translate.log")

    with open(log_path, "a", encoding="utf-8") as f:
        f.write("=== Subtitle Translate Agent ===\n")
        f.write(f"Source: {args.source}\n")
        f.write(f"Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write(f"Model: {section(config, 'model').get('name', 'deepseek-chat')}\n")
        f.write(f"Batch size: {batch_size} | Context: {context_size}\n")
        f.write(f"{'=' * 40}\n\n")

    glossary = GlossaryIndex(storage, log_path=log_path)
    orchestrator = TranslationOrchestrator(
        store,
        glossary,
        ModelCaller.from_config(config, api_key=api_key),
        prompt_builder=PromptBuilder(custom_instruction=instruction),
        success_delay=float(translation_cfg.get("success_delay", 0.5)),
        failure_delay=float(translation_cfg.get("failure_delay", 1.0)),
        log_path=log_path,
    )

    bar = tqdm(total=len(store), unit="seg", desc="Translating")

    def on_update(state):
        bar.total = state.progress.total
        bar.n = state.progress.current
        bar.set_postfix_str(state.current_message, refresh=True)

    orchestrator.state.subscribe(on_update)

    try:
        if store.missing_count() < len(store):
            orchestrator.retry_missing(batch_size=batch_size, context_size=context_size)
        else:
            orchestrator.run(batch_size=batch_size, context_size=context_size)
        for _ in range(retry_rounds):
            if not store.missing_count():
                break
            orchestrator.retry_missing(batch_size=max(1, batch_size // 2), context_size=context_size)
    except KeyboardInterrupt:
        orchestrator.request_stop()
        print("\nInterrupted, writing partial results.")
    finally:
        bar.close()
        segments_path, text_path = write_outputs(store, output_dir, base_name)

    print("\n=== Translation Complete ===")
    print(f"Segments: {segments_path}")
    print(f"Text:     {text_path}")
    print(f"Missing:  {store.missing_count()} / {len(store)}")
    print(f"Log:      {log_path}")
    return 0


def run_glossary(args, config: dict) -> int:
    glossary = GlossaryIndex(_open_storage(config))

    if args.action == "list":
        print(glossary.get_glossary_text() or "(glossary is empty)")
        print(f"Glossary: {glossary.get_term_count()} terms")
    elif args.action == "set":
        glossary.set_term(args.term, args.translation)
    elif args.action == "remove":
        if not glossary.remove_term(args.term):
            print(f"Error: term not found: {args.term}", file=sys.stderr)
            return 1
    elif args.action == "clear":
        glossary.clear()
    elif args.action == "rename":
        if args.segments and not args.segments.lower().endswith(".json"):
            print(f"Error: --segments must be a segments .json file: {args.segments}", file=sys.stderr)
            return 1
        store = load_segments(args.segments) if args.segments else None
        changed = glossary.rename(args.term, args.translation, store)
        if store is not None:
            with open(args.segments, "w", encoding="utf-8") as f:
                json.dump({"segments": store.to_records()}, f, ensure_ascii=False, indent=2)
        print(f"Renamed {args.term} -> {args.translation} ({changed} segments updated)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Subtitle Translate Agent - batch LLM translation with index integrity")
    parser.add_argument("--config", default="config.yaml", help="Path to config.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    translate = sub.add_parser("translate", help="Translate a segment file")
    translate.add_argument("--source", "-s", required=True, help="Source .txt (blank-line separated) or segments .json")
    translate.add_argument("--output", "-o", default="", help="Output directory (default: directories.output)")
    translate.add_argument("--batch-size", type=int, default=None, help="Segments per request")
    translate.add_argument("--context-size", type=int, default=None, help="Context segments on each side")
    translate.add_argument("--instruction", default=None, help="Custom tone/register instruction")
    translate.add_argument("--retry-rounds", type=int, default=None, help="Automatic retry rounds for missing segments")
    translate.add_argument("--api-key", default="", help="API key (else stored setting, env, config)")
    translate.add_argument(
        "--save-settings",
        action="store_true",
        help="Persist --api-key / --instruction for later runs",
    )

    glossary = sub.add_parser("glossary", help="Manage the persisted proper-noun glossary")
    glossary_sub = glossary.add_subparsers(dest="action", required=True)
    glossary_sub.add_parser("list", help="Show all terms")
    set_cmd = glossary_sub.add_parser("set", help="Add or overwrite a term")
    set_cmd.add_argument("term")
    set_cmd.add_argument("translation")
    remove_cmd = glossary_sub.add_parser("remove", help="Delete a term")
    remove_cmd.add_argument("term")
    glossary_sub.add_parser("clear", help="Delete all terms")
    rename_cmd = glossary_sub.add_parser("rename", help="Correct a term and propagate into translations")
    rename_cmd.add_argument("term")
    rename_cmd.add_argument("translation")
    rename_cmd.add_argument("--segments", default="", help="Segments .json to update in place")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config(args.config)
        if args.command == "translate":
            return run_translate(args, config)
        return run_glossary(args, config)
    except Exception as exc:  # noqa: BLE001
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
