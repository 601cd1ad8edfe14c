from __future__ import annotations

import argparse
import logging

from app.worker.runner import WorkerConfig, run_until_idle, run_worker_forever


def main() -> None:
    parser = argparse.ArgumentParser(prog="python -m app.worker")
    parser.add_argument("--once", action="store_true", help="drain due jobs and exit")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s %(message)s")
    config = WorkerConfig()
    if args.once:
        run_until_idle(config=config)
        return
    run_worker_forever(config=config)


if __name__ == "__main__":
    main()
