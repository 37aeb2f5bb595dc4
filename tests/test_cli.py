#!/usr/bin/env python3
"""Tests for the command-line interface."""

import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest import mock

from grimoire import cli
from grimoire.models import JobSnapshot, JobStatus


class FakeManager:
    """Minimal JobManager stand-in returning a fixed outcome."""

    def __init__(self, status, error=None):
        self.status = status
        self.error = error
        self.submitted = []

    def __call__(self, settings):
        self.settings = settings
        return self

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def create_job(self, decklist):
        self.submitted.append(decklist)
        return "job-1"

    def wait_for(self, job_id, timeout=None):
        return JobSnapshot(job_id=job_id, status=self.status,
                           created_at=datetime.now(timezone.utc), error=self.error,
                           pages_expected=2, pages_rendered=1)

    def get_result(self, job_id):
        return b"%PDF-1.4 fake"


class TestCli(unittest.TestCase):
    """Test the grimoire command."""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.decklist = self.temp_dir / "deck.txt"
        self.decklist.write_text("4 Lightning Bolt (lea) 162\n", encoding="utf-8")
        self.output = self.temp_dir / "deck.pdf"

    def test_writes_pdf(self):
        manager = FakeManager(JobStatus.COMPLETE)
        with mock.patch.object(cli, "JobManager", manager), \
                mock.patch.object(cli, "setup_cli_logging"):
            cli.main([str(self.decklist), "-o", str(self.output), "--workers", "3"])

        self.assertEqual(self.output.read_bytes(), b"%PDF-1.4 fake")
        self.assertEqual(manager.submitted, ["4 Lightning Bolt (lea) 162\n"])
        self.assertEqual(manager.settings.worker_count, 3)

    def test_failed_job_exits_nonzero(self):
        manager = FakeManager(JobStatus.ERROR, error="lookup failed")
        with mock.patch.object(cli, "JobManager", manager), \
                mock.patch.object(cli, "setup_cli_logging"):
            with self.assertRaises(SystemExit) as ctx:
                cli.main([str(self.decklist), "-o", str(self.output)])
        self.assertEqual(ctx.exception.code, 1)
        self.assertFalse(self.output.exists())

    def test_missing_decklist(self):
        with mock.patch.object(cli, "setup_cli_logging"):
            with self.assertRaises(SystemExit):
                cli.main([str(self.temp_dir / "nope.txt")])


if __name__ == "__main__":
    unittest.main()
