from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import List, Optional

from . import config
from .config import LINKS_PER_EMAIL, SUMMARY_DELAY_SECONDS
from .dispatcher import BatchContext, BatchDispatcher
from .email_formatter import build_email_body, build_email_subject
from .link_store import LinkStore, StorageError
from .mailer import MailError, MailSender, build_mailer
from .models import SummaryResult, UserLinkQueue
from .summarizer import Summarizer, SummaryError

logger = logging.getLogger(__name__)


class BatchTrigger:
    """Flushes a user's pending links into a summarize-and-email batch once the threshold is reached."""

    def __init__(
        self,
        store: LinkStore,
        summarizer: Summarizer,
        mailer: MailSender,
        dispatcher: BatchDispatcher,
        threshold: int = LINKS_PER_EMAIL,
        delay_seconds: float = SUMMARY_DELAY_SECONDS,
        subject: Optional[str] = None,
    ):
        if threshold <= 0:
            raise ValueError("threshold must be positive.")
        self._store = store
        self._summarizer = summarizer
        self._mailer = mailer
        self._dispatcher = dispatcher
        self._threshold = threshold
        self._delay = delay_seconds
        self._subject = subject or build_email_subject()

    @property
    def store(self) -> LinkStore:
        return self._store

    @property
    def dispatcher(self) -> BatchDispatcher:
        return self._dispatcher

    def submit(self, email: str, url: str) -> UserLinkQueue:
        """Append a link and flush the queue if it is full. Returns the queue as persisted."""
        with self._store.lock(email):
            queue = self._store.append(email, url)
            logger.info("Queued link for %s (%s/%s)", email, len(queue.links), self._threshold)
            if self.on_append(queue) is not None:
                queue = UserLinkQueue(email=email)
        return queue

    def on_append(self, queue: UserLinkQueue) -> Optional[Future]:
        if len(queue.links) < self._threshold:
            return None
        with self._store.lock(queue.email):
            # another submission may have flushed this address in the meantime
            queue = self._store.load(queue.email)
            if len(queue.links) < self._threshold:
                return None
            if not self._dispatcher.reserve():
                logger.warning(
                    "Batch pool is full; keeping %s pending links for %s until the next submission",
                    len(queue.links),
                    queue.email,
                )
                return None
            snapshot = list(queue.links)
            try:
                self._store.clear(queue.email)
            except StorageError as exc:
                self._dispatcher.release()
                logger.error("Could not clear queue for %s; batch not started: %s", queue.email, exc)
                return None
            logger.info("Flushing %s links for %s", len(snapshot), queue.email)
            try:
                return self._dispatcher.dispatch(
                    self.run_batch,
                    queue.email,
                    snapshot,
                    on_cancel=lambda: self.restore(queue.email, snapshot),
                )
            except RuntimeError as exc:
                logger.error("Batch pool unavailable for %s: %s", queue.email, exc)
                self.restore(queue.email, snapshot)
                return None

    def restore(self, email: str, links: List[str]) -> None:
        """Put unsummarized links back at the front of the address's queue."""
        with self._store.lock(email):
            queue = self._store.load(email)
            queue.links = list(links) + queue.links
            try:
                self._store.save(queue)
            except StorageError as exc:
                logger.error("Lost %s links for %s: %s", len(links), email, exc)
                return
        logger.info("Returned %s links to the queue for %s", len(links), email)

    def run_batch(self, ctx: BatchContext, email: str, links: List[str]) -> List[SummaryResult]:
        results: List[SummaryResult] = []
        for idx, link in enumerate(links, start=1):
            if (idx > 1 and not ctx.wait(self._delay)) or ctx.expired():
                logger.warning("Batch for %s stopped after %s of %s links", email, idx - 1, len(links))
                self.restore(email, links[idx - 1 :])
                break
            logger.info("---- Summarizing link %s/%s for %s ----", idx, len(links), email)
            results.append(self._summarize(link))

        if not results:
            logger.info("Nothing summarized for %s; skipping email", email)
            return results

        text_body, html_body = build_email_body(result.to_entry() for result in results)
        try:
            self._mailer.send(email, self._subject, text_body, html_body)
        except MailError as exc:
            logger.exception("Failed to send email to %s: %s", email, exc)
        else:
            logger.info("Sent summaries to %s via %s", email, self._mailer.provider)
        _log_batch_counts(results)
        return results

    def _summarize(self, link: str) -> SummaryResult:
        try:
            summary = self._summarizer.summarize(link)
        except SummaryError as exc:
            logger.exception("Summarization failed for %s: %s", link, exc)
            return SummaryResult(link=link, status="failed", error=str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected failure for %s: %s", link, exc)
            return SummaryResult(link=link, status="failed", error=str(exc))
        return SummaryResult(link=link, status="success", summary=summary)


def build_trigger(settings: config.Settings) -> BatchTrigger:
    store = LinkStore(settings.storage_dir)
    summarizer = Summarizer(api_key=settings.openai_api_key, model=settings.openai_model)
    mailer = build_mailer(
        brevo_api_key=settings.brevo_api_key,
        sendgrid_api_key=settings.sendgrid_api_key,
        smtp_user=settings.smtp_user,
        smtp_password=settings.smtp_password,
        from_email=settings.from_email,
        from_name=settings.from_name,
        smtp_host=settings.smtp_host,
        smtp_port=settings.smtp_port,
    )
    dispatcher = BatchDispatcher(
        max_workers=settings.max_batch_workers,
        max_pending=settings.max_pending_batches,
        timeout_seconds=settings.batch_timeout_seconds,
    )
    logger.info("Using OpenAI model=%s", settings.openai_model)
    logger.info("Using mail provider=%s", mailer.provider)
    logger.info("Storing pending links under %s", store.root)
    return BatchTrigger(
        store=store,
        summarizer=summarizer,
        mailer=mailer,
        dispatcher=dispatcher,
        threshold=settings.links_per_email,
        delay_seconds=settings.summary_delay_seconds,
    )


def _count_success(results: List[SummaryResult]) -> int:
    return len([r for r in results if r.is_success()])


def _count_failure(results: List[SummaryResult]) -> int:
    return len([r for r in results if not r.is_success()])


def _log_batch_counts(results: List[SummaryResult]) -> None:
    total = len(results)
    success = _count_success(results)
    failure = _count_failure(results)
    logger.info("Batch completed. Total=%s Success=%s Failure=%s", total, success, failure)
