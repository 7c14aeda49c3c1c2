"""
Queue drainer: one batch run over the pending tag-extraction jobs.
"""

import time
from typing import List, Optional
from .queue_client import QueueClient, QueueAPIError, ResultSubmissionFailed
from .image_fetcher import ImageFetcher, NoImagesAvailable
from .vision_oracle import VisionOracle, OracleUnavailable
from .tag_validator import TagValidator
from .models import Job, JobResult, DrainSummary
from .logging import get_logger


TAG_NOT_FOUND_MESSAGE = "Could not extract player tag from images"


class ProcessorError(Exception):
    """Custom exception for processor errors."""
    pass


class QueueDrainer:
    """Drains the pending queue once, job by job.

    Every job runs ``fetch images -> ask the vision model -> validate ->
    submit``. Any stage failure short-circuits to a failure result for that
    job; nothing that happens inside one job stops the rest of the batch.
    Only failing to list the pending jobs aborts the run.
    """

    def __init__(
        self,
        queue_client: Optional[QueueClient] = None,
        image_fetcher: Optional[ImageFetcher] = None,
        vision_oracle: Optional[VisionOracle] = None,
        tag_validator: Optional[TagValidator] = None,
    ):
        self.logger = get_logger("processor")
        self.queue_client = queue_client or QueueClient()
        self.image_fetcher = image_fetcher or ImageFetcher()
        self.vision_oracle = vision_oracle or VisionOracle()
        self.tag_validator = tag_validator or TagValidator()

    def get_pending_jobs(self) -> List[Job]:
        """Get the jobs waiting in the remote queue."""
        try:
            jobs = self.queue_client.get_pending_jobs()
        except QueueAPIError as e:
            self.logger.error(f"❌ Failed to fetch pending jobs: {e}")
            raise ProcessorError(f"Failed to fetch pending jobs: {e}") from e

        self.logger.info(f"🎯 Found {len(jobs)} job(s) to process")
        return jobs

    def extract_tag(self, job: Job) -> JobResult:
        """Run the extraction pipeline for one job without submitting anything."""
        start_time = time.time()
        result = JobResult(job_id=job.id, success=False)

        try:
            images = self.image_fetcher.fetch_all(job.imageUrls)
            answer = self.vision_oracle.ask(images)
            extraction = self.tag_validator.validate(answer)

            if extraction.found:
                result.success = True
                result.extracted_tag = extraction.tag
                self.logger.info(f"✅ Extracted player tag: {extraction.tag}")
            else:
                result.error_message = TAG_NOT_FOUND_MESSAGE
                self.logger.warning(
                    f"❌ Failed to extract player tag ({extraction.reason}"
                    + (f": {extraction.candidate}" if extraction.candidate else "")
                    + ")"
                )

        except NoImagesAvailable as e:
            result.error_message = str(e)
            self.logger.warning(f"❌ {e}")
        except OracleUnavailable as e:
            result.error_message = str(e)
            self.logger.warning(f"❌ Vision model unavailable: {e}")
        except Exception as e:
            result.error_message = str(e) or type(e).__name__
            self.logger.exception(f"❌ Unexpected error processing job {job.id}: {e}")

        result.processing_time = time.time() - start_time
        return result

    def submit(self, result: JobResult) -> bool:
        """Submit a result once; failures are logged and not retried."""
        try:
            self.queue_client.submit_result(result)
        except ResultSubmissionFailed as e:
            self.logger.error(f"❌ {e}")
            return False
        except Exception as e:
            self.logger.error(f"❌ Unexpected error submitting result for job {result.job_id}: {e}")
            return False

        result.submitted = True
        kind = "result" if result.success else "failure result"
        self.logger.info(f"📨 Submitted {kind}")
        return True

    def process_job(self, job: Job) -> JobResult:
        """Extract the tag for a job and report the outcome to the queue."""
        result = self.extract_tag(job)
        self.submit(result)
        return result

    def process_jobs(self, jobs: List[Job]) -> DrainSummary:
        """Process jobs sequentially in the order received."""
        start_time = time.time()
        results = []

        for i, job in enumerate(jobs, start=1):
            self.logger.info(f"🔄 Processing job {i}/{len(jobs)} (ID: {job.id})")
            self.logger.info(f"   User: {job.userTag or 'unknown'} | Images: {len(job.imageUrls)}")
            results.append(self.process_job(job))

        succeeded = sum(1 for r in results if r.success)
        return DrainSummary(
            processed=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            processing_time=time.time() - start_time,
            results=results,
        )

    def run(self) -> DrainSummary:
        """Drain the queue once and return the run summary.

        Raises:
            ProcessorError: if the pending jobs could not be retrieved.
        """
        self.logger.info("📋 Fetching pending jobs...")
        jobs = self.get_pending_jobs()

        if not jobs:
            self.logger.info("✅ No pending jobs to process")
            return DrainSummary()

        summary = self.process_jobs(jobs)
        unsubmitted = sum(1 for r in summary.results if not r.submitted)

        self.logger.info(
            f"🏁 Processing complete! Processed: {summary.processed} | "
            f"Succeeded: {summary.succeeded} | Failed: {summary.failed} | "
            f"Time: {summary.processing_time:.1f}s"
        )
        if unsubmitted:
            self.logger.warning(f"⚠️  {unsubmitted} result(s) could not be submitted")

        return summary

    def test_connection(self) -> bool:
        """Test the connection to the queue API."""
        return self.queue_client.test_connection()

    def close(self):
        """Clean up resources."""
        self.queue_client.close()
        self.image_fetcher.close()
        self.vision_oracle.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
