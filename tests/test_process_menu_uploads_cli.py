"""
Tests for the process-menu-uploads command line entry point.
"""
import json
from unittest.mock import MagicMock, patch

import pytest

from menu_ingest.scripts import process_menu_uploads
from menu_ingest.services.menu_upload_runner import RunSummary

MODULE = "menu_ingest.scripts.process_menu_uploads"


@pytest.fixture
def runner():
    with patch(f"{MODULE}.create_engine") as create_engine, \
            patch(f"{MODULE}.sessionmaker") as sessionmaker, \
            patch(f"{MODULE}.configure_logging"), \
            patch(f"{MODULE}.build_runner") as build_runner:
        runner = MagicMock()
        build_runner.return_value = runner
        runner.session = sessionmaker.return_value.return_value
        runner.engine = create_engine.return_value
        yield runner


class TestMain:
    """Test main()."""

    def test_targeted_dry_run(self, runner, capsys):
        """Should pass the upload id and dry-run flag to the runner."""
        runner.run.return_value = RunSummary(upload_count=1, processed_count=4, total_tokens=620)

        assert process_menu_uploads.main(["--upload=7", "--dry-run"]) == 0

        runner.run.assert_called_once_with(upload_id=7, dry_run=True)
        printed = json.loads(capsys.readouterr().out)
        assert printed["uploadCount"] == 1
        assert printed["processedCount"] == 4
        assert printed["totalTokens"] == 620
        runner.session.close.assert_called_once()
        runner.engine.dispose.assert_called_once()

    def test_defaults(self, runner):
        runner.run.return_value = RunSummary()

        assert process_menu_uploads.main([]) == 0
        runner.run.assert_called_once_with(upload_id=None, dry_run=False)

    def test_fatal_error_exits_non_zero(self, runner):
        """Should return 1 and still close the session on a fatal error."""
        runner.run.side_effect = RuntimeError("database unavailable")

        assert process_menu_uploads.main([]) == 1
        runner.session.close.assert_called_once()

    @pytest.mark.parametrize("value", ["0", "-3", "abc"])
    def test_invalid_upload_id(self, runner, value):
        """Should reject upload ids that are not positive integers."""
        with pytest.raises(SystemExit):
            process_menu_uploads.main([f"--upload={value}"])
        runner.run.assert_not_called()


class TestPositiveInt:
    def test_accepts_positive(self):
        assert process_menu_uploads.positive_int("12") == 12


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
