"""Worker entry point.

Equivalent to ``celery -A infrastructure.tasks.config.celery worker -Q high,default,low``.
"""
from __future__ import annotations

from .config.celery import celery_app


def main() -> None:
    celery_app.worker_main(
        argv=[
            "worker",
            "--hostname=worker@%h",
            "--queues=high,default,low",
            "--loglevel=INFO",
        ]
    )


if __name__ == "__main__":
    main()
