# re-running an analysis script queues the same exports again, this cancels every
# task that is still waiting (READY) so only the running/finished ones are kept
#
# how to run: python cancel_duplicate_exports.py

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

from gee_common import initialize_gee, cancel_ready_tasks, TASKS_URL


def main():
    initialize_gee()
    print("Cancelling duplicate READY tasks...")
    cancelled = cancel_ready_tasks()
    print(f"  Cancelled {cancelled} READY tasks")
    print(f"  Check: {TASKS_URL}")
    return cancelled


if __name__ == "__main__":
    main()
