"""Convenience entry point for running a Celery worker with embedded beat.

Production deployments run `celery -A infrastructure.tasks worker` and a
separate `celery -A infrastructure.tasks beat`; this script is for local use.
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main(
        argv=["worker", "--beat", "--loglevel=INFO", "--queues=high,default,low", "--hostname=worker@%h"]
    )


if __name__ == "__main__":
    main()
