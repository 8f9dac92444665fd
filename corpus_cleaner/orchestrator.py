"""Refinery wiring source, filters, dedup, output, timers and progress for one run."""

from __future__ import annotations

import signal
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, List

from .config import OutputFormat, RefineryConfig
from .engine import (
    CancelToken,
    CountersSnapshot,
    FilterChain,
    FingerprintPolicy,
    OutputAggregator,
    RunCounters,
    RunStatus,
    ShardedDedupIndex,
    WorkScheduler,
    resolve_worker_count,
)
from .engine.exporter import BaseExporter, JsonlExporter, SQLiteExporter
from .engine.scheduler import SourceItem
from .errors import ConfigurationError, RefineryError
from .infra import FingerprintStore, SQLiteManager
from .logging_conf import configure_logging
from .scheduler import APSchedulerAdapter
from .sources import RecordSource, discover_files
from .ui import ProgressActivity, ProgressReporter

EXIT_CODES = {RunStatus.SUCCESS: 0, RunStatus.FAILED: 1, RunStatus.PARTIAL: 2}


@dataclass
class RunReport:
    """User-visible outcome of one run."""

    status: RunStatus
    counters: CountersSnapshot
    elapsed: float
    workers: int
    files: int = 0
    files_failed: int = 0
    unprocessed: int = 0
    delivered: List[int] = field(default_factory=list)
    lost: int = 0
    output_files: List[Path] = field(default_factory=list)
    fingerprints: int = 0
    persisted: int = 0
    cancel_reason: str | None = None
    error: str | None = None

    @property
    def exit_code(self) -> int:
        return EXIT_CODES[self.status]

    @property
    def records_per_second(self) -> float:
        return self.counters.total / self.elapsed if self.elapsed > 0 else 0.0

    def as_dict(self) -> dict[str, object]:
        return {
            "status": self.status.value,
            **self.counters.as_dict(),
            "elapsed": round(self.elapsed, 3),
            "records_per_second": round(self.records_per_second, 1),
            "workers": self.workers,
            "files": self.files,
            "files_failed": self.files_failed,
            "unprocessed": self.unprocessed,
            "delivered": list(self.delivered),
            "lost": self.lost,
            "output_files": [str(path) for path in self.output_files],
            "fingerprints": self.fingerprints,
            "persisted": self.persisted,
            "cancel_reason": self.cancel_reason,
            "error": self.error,
        }


def validate_config(config: RefineryConfig) -> None:
    """Reject unusable paths before any processing starts."""

    if config.input_path is None:
        raise ConfigurationError("An input path is required")
    if config.output_path is None:
        raise ConfigurationError("An output path is required")
    if not config.input_path.exists():
        raise ConfigurationError(f"Input path does not exist: {config.input_path}")
    if config.output_path.exists() and not config.output_path.is_dir():
        raise ConfigurationError(f"Output path is not a directory: {config.output_path}")
    store = config.dedup.store_path
    if store is not None and store.exists() and store.is_dir():
        raise ConfigurationError(f"Dedup store path is a directory: {store}")


class Refinery:
    """Central coordinator managing the lifecycle of one refinery run."""

    def __init__(
        self,
        config: RefineryConfig,
        reporter: Callable[[CountersSnapshot], None] | None = None,
        token: CancelToken | None = None,
    ) -> None:
        self.config = config
        self.reporter = reporter
        self.token = token or CancelToken()
        self.logger = configure_logging(verbose=config.verbose).bind(component="refinery")
        self.storage = SQLiteManager()

    # ------------------------------------------------------------------
    def run(self, source: Iterable[SourceItem] | None = None) -> RunReport:
        """Execute the run; ``source`` overrides file discovery when given."""

        validate_config(self.config)
        started = time.monotonic()
        workers = resolve_worker_count(self.config.scheduler.threads)

        record_source: RecordSource | None = None
        if source is None:
            activity = ProgressActivity(enabled=self.config.progress)
            activity.start("Discovering input files…")
            try:
                files = discover_files(self.config.input_path)
            finally:
                activity.close()
            record_source = RecordSource(files, batch_size=self.config.scheduler.read_batch_size)
            source = record_source
            self.logger.info("files_discovered", count=len(files), input=str(self.config.input_path))

        store = self._open_store()
        index = ShardedDedupIndex.for_workers(
            workers,
            shards=self.config.dedup.shards,
            max_entries=self.config.dedup.max_entries,
            min_free_memory_mb=self.config.dedup.min_free_memory_mb,
            memory_check_interval=self.config.dedup.memory_check_interval,
        )
        if store is not None:
            loaded = index.preload(store)
            self.logger.info("dedup_store_loaded", path=str(store.path), fingerprints=loaded)

        counters = RunCounters()
        sinks = self._create_sinks()
        aggregator = OutputAggregator(
            sinks,
            queue_size=self.config.scheduler.output_queue_size,
            on_fatal=self.token.abort,
        )
        scheduler = WorkScheduler(
            chain=FilterChain.from_config(self.config.filters),
            index=index,
            counters=counters,
            aggregator=aggregator,
            fingerprint=FingerprintPolicy(self.config.fingerprint),
            workers=workers,
            queue_size=self.config.scheduler.queue_size,
            token=self.token,
        )
        self.logger.info(
            "run_started",
            input=str(self.config.input_path),
            output=str(self.config.output_path),
            workers=workers,
            dedup_shards=index.shard_count,
            output_shards=len(sinks),
        )

        progress = self._build_reporter()
        timers = APSchedulerAdapter()
        timers.schedule_progress(lambda: progress(counters.snapshot()), self.config.scheduler.progress_interval)
        if self.config.scheduler.max_runtime_seconds:
            timers.schedule_deadline(lambda: self.token.cancel("max_runtime"), self.config.scheduler.max_runtime_seconds)
        try:
            with self._interrupt_handler(), timers:
                outcome = scheduler.run(source)
        finally:
            final = counters.finalize()
            progress(final)
            if isinstance(progress, ProgressReporter):
                progress.close()

        persisted = 0
        error = str(outcome.error) if outcome.error is not None else None
        # fingerprints of records a failed sink never wrote must not reach the store
        if store is not None and outcome.status is not RunStatus.FAILED and not aggregator.failed:
            try:
                persisted = store.flush(index)
                self.logger.info("dedup_store_flushed", path=str(store.path), new=persisted)
            except Exception as exc:  # noqa: BLE001
                self.logger.error("dedup_store_flush_failed", path=str(store.path), error=str(exc))
                outcome.status = RunStatus.FAILED
                error = f"dedup store flush failed: {exc}"
        self.storage.close_all()

        report = RunReport(
            status=outcome.status,
            counters=final,
            elapsed=time.monotonic() - started,
            workers=workers,
            files=record_source.files_opened if record_source else 0,
            files_failed=record_source.files_failed if record_source else 0,
            unprocessed=outcome.unprocessed,
            delivered=list(aggregator.stats.delivered),
            lost=aggregator.stats.lost,
            output_files=[sink.path for sink in sinks if sink.path is not None],
            fingerprints=len(index),
            persisted=persisted,
            cancel_reason=outcome.cancel_reason,
            error=error,
        )
        log = self.logger.error if report.status is RunStatus.FAILED else self.logger.info
        log("run_finished", **report.as_dict())
        return report

    # ------------------------------------------------------------------
    def _open_store(self) -> FingerprintStore | None:
        path = self.config.dedup.store_path
        if path is None:
            return None
        return FingerprintStore(self.storage, path)

    def _create_sinks(self) -> list[BaseExporter]:
        output_dir = Path(self.config.output_path)
        output = self.config.output
        # runs resumed from a persisted store extend the earlier output
        append = self.config.dedup.store_path is not None
        sinks: list[BaseExporter] = []
        try:
            for shard in range(output.shards):
                if output.format is OutputFormat.JSONL:
                    sinks.append(JsonlExporter(output_dir, shard=shard, prefix=output.prefix, append=append))
                elif output.format is OutputFormat.SQLITE:
                    path = output_dir / f"{output.prefix}-{shard:05d}.db"
                    sinks.append(SQLiteExporter(path, shard=shard, append=append))
                else:
                    raise ConfigurationError(f"Unsupported output format: {output.format}")
        except RefineryError:
            for sink in sinks:
                sink.close()
            raise
        return sinks

    def _build_reporter(self) -> Callable[[CountersSnapshot], None]:
        if self.reporter is not None:
            return self.reporter
        reporter = ProgressReporter(enabled=self.config.progress)
        reporter.start()
        return reporter

    @contextmanager
    def _interrupt_handler(self) -> Iterator[None]:
        """Turn SIGINT into a cooperative cancel while the run is active."""

        if threading.current_thread() is not threading.main_thread():
            yield
            return

        def _handle(signum, frame) -> None:  # noqa: ARG001
            if self.token.cancelled:
                # second interrupt: stop waiting on the source as well
                raise KeyboardInterrupt
            self.logger.warning("cancellation_requested", signal=signum)
            self.token.cancel("interrupted")

        previous = signal.signal(signal.SIGINT, _handle)
        try:
            yield
        finally:
            signal.signal(signal.SIGINT, previous)


__all__ = ["EXIT_CODES", "Refinery", "RunReport", "validate_config"]
