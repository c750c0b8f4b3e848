"""Pull several models in parallel, printing progress, and cancel one of them."""

from __future__ import annotations

import logging
import threading

from suhaider import Progress, StreamHandler, SuhAiderClient, init_logging, load_config

init_logging("INFO")
logger = logging.getLogger("pull_models")

MODELS = ["llama3.2", "mistral", "phi3"]


def main() -> None:
    finished = threading.Event()
    remaining = [len(MODELS)]
    lock = threading.Lock()

    def on_event(event) -> None:
        if isinstance(event, Progress):
            print(f"[{event.operation_id}] {event.status} {event.formatted_progress}")

    def finish() -> None:
        with lock:
            remaining[0] -= 1
            if remaining[0] == 0:
                finished.set()

    def on_complete(result) -> None:
        print(f"[{result.operation_id}] {result.outcome.value} in {result.formatted_duration}")
        finish()

    def on_error(error) -> None:
        logger.error("pull failed: %s", error)
        finish()

    with SuhAiderClient(load_config()) as client:
        handles = client.pull_models_parallel(
            MODELS, StreamHandler(on_event=on_event, on_complete=on_complete, on_error=on_error)
        )
        # the last one is not needed after all
        threading.Timer(5.0, handles[-1].cancel).start()
        finished.wait()


if __name__ == "__main__":
    main()
