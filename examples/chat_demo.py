"""Minimal demonstration of streaming chat with citations and logic distillation."""

import sys

from listening_core.api import service
from listening_core.domain.exceptions import DistillationError, RateLimitError
from listening_core.infrastructure.ingest import ingest_text_files

if __name__ == "__main__":
    report = ingest_text_files(sys.argv[1:])
    for name, err in report.failures.items():
        print(f"Skipped {name}: {err.message}")
    service.add_documents(report.documents)

    question = "Summarise the main points of the uploaded documents."
    print("User:", question)
    print("AI: ", end="", flush=True)
    final = None
    for event in service.send_message(question):
        if event.kind == "delta":
            print(event.delta_text, end="", flush=True)
        elif event.kind == "final":
            final = event.message
    print()
    if final is not None:
        for c in final.citations or ():
            print(f'  [{c.file_name}] "{c.quote}"')
        print(f"Generated in {final.generation_time_ms / 1000:.2f}s")

    try:
        print("New logic point:", service.save_logic())
    except RateLimitError as e:
        print(e.message)
    except DistillationError:
        print("Failed to create logic from conversation.")
