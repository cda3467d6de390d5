import concurrent.futures
import pytest
from pathlib import Path
from unittest.mock import MagicMock, patch
from mediaopt.config.models import RunConfig, TimeoutConfig
from mediaopt.domain.cancellation import CancellationToken
from mediaopt.domain.errors import Cancelled, ErrorKind
from mediaopt.domain.events import FileCompleted, RunCompleted
from mediaopt.domain.models import DiscoveredFile, JobStatus, MediaKind, SizeClass
from mediaopt.pipeline.orchestrator import Orchestrator
from mediaopt.pipeline.progress import ProgressTracker
from mediaopt.pipeline.scheduler import ConcurrencyScheduler


def _file(name, size=10, kind=MediaKind.IMAGE):
    return DiscoveredFile(path=Path(f"/media/{name}"), size_bytes=size, modified_time=1, kind=kind)


def _orchestrator(event_bus, processor, config=None, ledger=None, token=None):
    config = config or RunConfig(workers=2)
    ledger = ledger or MagicMock()
    ledger.stats.return_value = (0, 0, 0.0)
    return Orchestrator(
        config=config,
        event_bus=event_bus,
        file_scanner=MagicMock(),
        ledger=ledger,
        scheduler=ConcurrencyScheduler(config.workers),
        processor=processor,
        cancel_token=token,
    )


def test_timeout_follows_size_class(event_bus):
    config = RunConfig(timeouts=TimeoutConfig(small=1, medium=2, large=3, video=4))
    orchestrator = _orchestrator(event_bus, MagicMock(), config=config)

    assert orchestrator._timeout_for(SizeClass.SMALL) == 1
    assert orchestrator._timeout_for(SizeClass.MEDIUM) == 2
    assert orchestrator._timeout_for(SizeClass.LARGE) == 3
    assert orchestrator._timeout_for(SizeClass.VIDEO) == 4


def test_deadline_uses_class_timeout(event_bus):
    config = RunConfig(timeouts=TimeoutConfig(small=7))
    processor = MagicMock()
    orchestrator = _orchestrator(event_bus, processor, config=config)

    orchestrator._run_task(_file("a.jpg"), 0, 1, ProgressTracker(event_bus, 1))

    deadline = processor.process.call_args[0][1]
    assert deadline.seconds == 7


def test_unexpected_exception_is_recorded_not_raised(event_bus):
    completed = []
    event_bus.subscribe(FileCompleted, completed.append)
    processor = MagicMock()
    processor.process.side_effect = ValueError("bug")
    orchestrator = _orchestrator(event_bus, processor)

    job = orchestrator._run_task(_file("a.jpg"), 0, 1, ProgressTracker(event_bus, 1))

    assert job.status == JobStatus.FAILED
    assert "bug" in job.error_message
    assert completed[0].error == job.error_message


def test_cancelled_while_waiting_for_permit(event_bus):
    token = CancellationToken()
    token.cancel()
    scheduler = MagicMock()
    scheduler.acquire.side_effect = Cancelled("Cancelled while waiting")
    processor = MagicMock()
    orchestrator = _orchestrator(event_bus, processor, token=token)
    orchestrator.scheduler = scheduler

    job = orchestrator._run_task(_file("a.jpg"), 0, 1, ProgressTracker(event_bus, 1))

    assert job.status == JobStatus.INTERRUPTED
    assert job.error_kind == ErrorKind.CANCELLED
    processor.process.assert_not_called()


def test_run_reports_ledger_history(event_bus):
    runs = []
    event_bus.subscribe(RunCompleted, runs.append)
    ledger = MagicMock()
    orchestrator = _orchestrator(event_bus, MagicMock(), ledger=ledger)
    orchestrator.file_scanner.scan_all.return_value = []
    ledger.stats.return_value = (12, 3456, 22.5)

    report = orchestrator.run(Path("/media"))

    ledger.cleanup.assert_called_once()
    assert report.historical.total_files_ever_processed == 12
    assert runs[0].historical_stats.total_bytes_saved_historically == 3456
    assert runs[0].historical_stats.average_historical_reduction == 22.5


def test_keyboard_interrupt_cancels_token_and_reraises(event_bus):
    processor = MagicMock()
    orchestrator = _orchestrator(event_bus, processor)
    files = [_file("a.jpg"), _file("b.jpg")]
    tracker = ProgressTracker(event_bus, len(files))
    real_wait = concurrent.futures.wait
    calls = []

    def interrupted_wait(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            raise KeyboardInterrupt()
        return real_wait(*args, **kwargs)

    with patch("mediaopt.pipeline.orchestrator.concurrent.futures.wait", side_effect=interrupted_wait):
        with pytest.raises(KeyboardInterrupt):
            orchestrator._run_all(files, tracker)

    assert orchestrator.cancel_token.cancelled is True
