# Overview: Expiry sweep and the background timer that runs it.

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime

from flask import Flask, current_app
from sqlalchemy import update

from ..extensions import db
from ..models import Product
from ..time_utils import reference_day_start, to_utc_z, utcnow
from .status_service import EXPIRED


@dataclass(frozen=True)
class SweepResult:
    cutoff: datetime
    matched: int

    def to_dict(self) -> dict:
        return {"cutoff": to_utc_z(self.cutoff), "matched": self.matched}


def expiry_cutoff(now: datetime | None = None, offset_minutes: int | None = None) -> datetime:
    """Start of today at the reference offset, as UTC-naive."""
    if offset_minutes is None:
        offset_minutes = current_app.config["REFERENCE_TZ_OFFSET_MINUTES"]
    return reference_day_start(now or utcnow(), offset_minutes)


def sweep_expired_products(now: datetime | None = None) -> SweepResult:
    """
    Force every product expiring at or before the cutoff into the expired state.

    One multi-row UPDATE; the status != expired predicate makes a second run
    on the same day a no-op.
    """
    cutoff = expiry_cutoff(now)
    result = db.session.execute(
        update(Product)
        .where(Product.expiry_date <= cutoff, Product.status != EXPIRED)
        .values(status=EXPIRED, quantity=0, updated_at=now or utcnow())
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    sweep = SweepResult(cutoff=cutoff, matched=int(result.rowcount or 0))
    current_app.logger.info(
        "Expiry sweep at %s: %d products expired", to_utc_z(cutoff), sweep.matched,
    )
    return sweep


class ExpirySweeper:
    """
    Background timer for the expiry sweep.

    - tick() runs one sweep inside an app context; failures are logged and
      rolled back, and the next tick simply tries again.
    - start() / stop() manage the daemon thread; stop() is the shutdown hook.
    """

    def __init__(self, app: Flask, interval_seconds: int | None = None):
        self._app = app
        self._interval = interval_seconds or app.config["EXPIRY_SWEEP_INTERVAL_SECONDS"]
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def tick(self) -> SweepResult | None:
        with self._app.app_context():
            try:
                return sweep_expired_products()
            except Exception:
                db.session.rollback()
                self._app.logger.exception("Expiry sweep failed; retrying next tick")
                return None
            finally:
                db.session.remove()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name="expiry-sweeper", daemon=True)
        self._thread.start()
        self._app.logger.info("Expiry sweeper started (interval %ss)", self._interval)

    def stop(self, timeout: float = 30.0) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._app.logger.info("Expiry sweeper stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.tick()
            self._stop_event.wait(timeout=self._interval)
