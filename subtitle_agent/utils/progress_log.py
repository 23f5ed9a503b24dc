from datetime import datetime


def _print_safe(text: str) -> None:
    """Print text safely on consoles that are not UTF-8 capable."""
    try:
        print(text)
    except UnicodeEncodeError:
        print(text.encode("ascii", "backslashreplace").decode())


def log_progress(log_path: str | None, stage: str, detail: str, status: str = "OK") -> None:
    """Append a progress entry to the run log (console only when no log path)."""
    timestamp = datetime.now().strftime("%H:%M:%S")
    entry = f"[{timestamp}] {status} {stage}: {detail}\n"
    _print_safe(f"  {status} {stage}: {detail}")
    if not log_path:
        return
    with open(log_path, "a", encoding="utf-8") as file:
        file.write(entry)
