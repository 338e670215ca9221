"""Tests for the rich sync progress display."""

from bucketsync.cli_progress import SyncProgressDisplay
from bucketsync.sync import SyncProgressEvent, SyncProgressInfo


def info(event, **kwargs):
    return SyncProgressInfo(event=event, pair_id=1, session_id=1, **kwargs)


class TestSyncProgressDisplay:
    """Test SyncProgressDisplay event handling."""

    def test_events_outside_context_keep_final_event(self):
        """Test that terminal events are recorded without a live display."""
        display = SyncProgressDisplay()

        display.handle_event(info(SyncProgressEvent.UPLOADING, current_file="a"))
        assert display.final_event is None

        final = info(SyncProgressEvent.COMPLETE, stats={"uploads": 1})
        display.handle_event(final)
        assert display.final_event is final

    def test_live_display_updates(self):
        """Test that events update the running progress task."""
        with SyncProgressDisplay() as display:
            display.handle_event(
                info(
                    SyncProgressEvent.UPLOADING,
                    current_file="a.txt",
                    files_processed=1,
                    total_files=2,
                    bytes_transferred=2048,
                )
            )
            task = display._progress.tasks[0]
            assert task.completed == 1
            assert task.total == 2
            assert "a.txt" in task.description
            assert task.fields["bytes_info"] == "2.0 KB"

            display.handle_event(info(SyncProgressEvent.ERROR, error="boom"))
            assert display.final_event.error == "boom"

        assert display._progress is None
