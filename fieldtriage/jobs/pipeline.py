"""Submission pipeline: transcribe -> analyze -> persist -> fan out.

Status machine::

    pending -> processing -> completed -> notified
                     \\-> error

``error`` is entered from ``pending``/``processing`` only and is terminal. A
fan-out failure leaves the submission at ``completed``. Each transition is
persisted before the next step starts; nothing is cached between runs.
"""

from flask import current_app

from ..errors import PersistenceError
from ..extensions import job_runner
from ..services.analysis import AnalysisResult, build_analyzer
from ..services.record_store import RecordStore
from ..services.transcription import build_transcriber
from . import in_app_context
from .dispatch import enqueue_dispatch
from .fanout import FanOut


def pipeline_job_id(submission_id: int) -> str:
    return f"submission-{submission_id}"


class Pipeline:
    """One sequential run per submission, with injected collaborators.

    ``transcriber.transcribe(audio_ref) -> str`` may raise;
    ``analyzer.analyze(transcript, context) -> AnalysisResult`` must not;
    ``fanout.run(submission_id, summary)`` may raise.
    """

    def __init__(self, store, transcriber, analyzer, fanout):
        self.store = store
        self.transcriber = transcriber
        self.analyzer = analyzer
        self.fanout = fanout

    def run(self, submission_id: int, audio_ref: str = None) -> str:
        """Drive one submission.

        Returns the status reached, ``skipped`` when another run holds the
        claim, or ``error`` when the claim itself could not be written.
        """
        log = current_app.logger
        try:
            claimed = self.store.claim(submission_id)
        except PersistenceError:
            # nothing was written; the submission stays pending and /process can re-kick it
            log.exception('Submission %s: could not claim for processing', submission_id)
            return 'error'
        if not claimed:
            sub = self.store.get(submission_id)
            log.warning('Submission %s not claimable (status=%s); run skipped',
                        submission_id, sub.status if sub else None)
            return 'skipped'
        log.info('Submission %s: pending -> processing', submission_id)

        sub = self.store.get(submission_id)
        audio_ref = audio_ref or sub.audio_url
        context = sub.context or ''

        try:
            transcript = self.transcriber.transcribe(audio_ref)
        except Exception as e:
            log.exception('Submission %s: transcription failed', submission_id)
            return self._fail(submission_id, f'transcription failed: {e}')

        result = self._analyze(submission_id, transcript, context)
        fields = dict(result.assessment.to_fields(), transcript=transcript)
        try:
            self.store.update(submission_id, fields, 'completed')
        except Exception as e:
            log.exception('Submission %s: persisting results failed', submission_id)
            return self._fail(submission_id, f'persisting results failed: {e}')
        log.info('Submission %s: processing -> completed (risk=%s priority=%s urgency=%s source=%s)',
                 submission_id, result.assessment.risk_score, result.assessment.priority_level,
                 result.assessment.urgency_level, result.source)

        try:
            self.fanout.run(submission_id, result.assessment.summary)
        except Exception:
            log.exception('Submission %s: fan-out failed; status stays completed', submission_id)
            return 'completed'
        return 'notified'

    def _analyze(self, submission_id, transcript, context) -> AnalysisResult:
        try:
            result = self.analyzer.analyze(transcript, context)
        except Exception as e:
            current_app.logger.exception('Submission %s: analyzer raised; using fallback assessment', submission_id)
            return AnalysisResult.fallback(f'analyzer raised: {e}')
        if not result.ok:
            current_app.logger.warning('Submission %s: analysis fell back to defaults (%s)', submission_id, result.reason)
        return result

    def _fail(self, submission_id, reason) -> str:
        try:
            self.store.update(submission_id, {'error': reason[:1000]}, 'error')
            current_app.logger.info('Submission %s: processing -> error', submission_id)
        except Exception:
            current_app.logger.exception('Submission %s: could not record error state', submission_id)
        return 'error'


def build_pipeline(config=None) -> Pipeline:
    config = config if config is not None else current_app.config
    store = RecordStore()
    dispatch = enqueue_dispatch if config.get('AUTO_DISPATCH_DELIVERIES') else None
    return Pipeline(store, build_transcriber(config), build_analyzer(config), FanOut(store, dispatch=dispatch))


def _run_pipeline(submission_id: int, audio_ref: str = None):
    return build_pipeline().run(submission_id, audio_ref)


def process_submission(submission_id: int, audio_ref: str = None):
    """Public job entrypoint; ensures an app context for RQ workers."""
    return in_app_context(_run_pipeline, submission_id, audio_ref)


def start_pipeline(submission_id: int, audio_ref: str = None):
    """Schedule the run for a submission and return its job handle.

    Raises ``DuplicateRunError`` if a run for this submission is still
    queued or running.
    """
    job_id = pipeline_job_id(submission_id)
    RecordStore().set_job_id(submission_id, job_id)
    handle = job_runner.submit(process_submission, submission_id, audio_ref, job_id=job_id)
    current_app.logger.info('Submission %s: pipeline job %s submitted (%s)', submission_id, job_id, handle.backend)
    return handle
