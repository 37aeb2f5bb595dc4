#!/usr/bin/env python3
"""Tests for the logging helpers."""

import logging
import unittest

from grimoire.api_utils import RateLimiter, RetryPolicy
from grimoire.image_downloader import ImageDownloader
from grimoire.job_manager import Job
from grimoire.logging_utils import job_logger
from helpers import FakeSession


class TestJobLogger(unittest.TestCase):
    """Test the per-job logger adapter."""

    def test_prefix_and_record_attribute(self):
        logger = logging.getLogger("grimoire.test")
        with self.assertLogs(logger, level="INFO") as ctx:
            job_logger(logger, "abc").info("Parsed %d entries", 3)

        self.assertEqual(ctx.records[0].getMessage(), "Job abc: Parsed 3 entries")
        self.assertEqual(ctx.records[0].job_id, "abc")

    def test_caller_extra_is_kept(self):
        logger = logging.getLogger("grimoire.test")
        with self.assertLogs(logger, level="INFO") as ctx:
            job_logger(logger, "abc").info("hello", extra={"stage": "fetch"})
        self.assertEqual(ctx.records[0].stage, "fetch")
        self.assertEqual(ctx.records[0].job_id, "abc")

    def test_job_transitions_carry_job_id(self):
        job = Job(job_id="job-7")
        with self.assertLogs("grimoire.job_manager", level="INFO") as ctx:
            job.fail(RuntimeError("boom"))
        self.assertEqual(ctx.records[0].getMessage(), "Job job-7: failed: boom")
        self.assertEqual(ctx.records[0].levelno, logging.ERROR)

    def test_fetch_failures_are_tagged(self):
        downloader = ImageDownloader(
            FakeSession(), RateLimiter(0.0), RetryPolicy(max_attempts=1, sleep=lambda s: None)
        )
        with self.assertLogs("grimoire.image_downloader", level="WARNING") as ctx:
            downloader.download_all(["https://img.test/missing"], job_id="job-9")
        self.assertTrue(all(record.job_id == "job-9" for record in ctx.records))
        self.assertTrue(ctx.records[0].getMessage().startswith("Job job-9: "))


if __name__ == "__main__":
    unittest.main()
