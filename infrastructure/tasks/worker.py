"""Run one worker that consumes every payment queue and embeds beat.

Equivalent to ``celery -A infrastructure.tasks worker -B -Q high,default,low``.
Run a single embedded beat per deployment, or the sweep fires twice (harmless,
but noisy).
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main(
        argv=[
            "worker",
            "--beat",
            "--loglevel=INFO",
            "--hostname=payments@%h",
            "--queues=high,default,low",
        ]
    )


if __name__ == "__main__":
    main()
