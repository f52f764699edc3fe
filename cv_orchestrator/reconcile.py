"""Pick between an ATS result embedded in the analysis record and a polled one."""
from __future__ import annotations

from cv_orchestrator.models import AnalysisJob, AtsScores, is_ats_ready


def embedded_ready(job: AnalysisJob | None) -> AtsScores | None:
    """The analysis record's own ATS payload, if it already counts as final."""
    if job is None:
        return None
    scores = job.embedded_ats_scores
    return scores if is_ats_ready(scores) else None


def reconcile(embedded: AtsScores | None, polled: AtsScores | None) -> AtsScores | None:
    """What the view should show.

    A ready embedded result always wins; otherwise the last polled record,
    partial or not, as long as something in it is filled in. A partial
    embedded payload is shown until anything has been polled.
    """
    if is_ats_ready(embedded):
        return embedded
    if polled is not None and not polled.is_empty():
        return polled
    if embedded is not None and not embedded.is_empty():
        return embedded
    return None
