class PipelineError(Exception):
    """Base class for errors raised by the insights pipeline."""


class SourceFetchError(PipelineError):
    """The event source was unreachable or answered with something we can't read. Fatal to the run."""


class GraphWriteError(PipelineError):
    """An upsert into the navigation graph failed. Fatal to the run."""


class SynthesisError(PipelineError):
    """The language model failed for a single pain point. The pain point is skipped."""


class RankingError(PipelineError):
    """The language model failed to re-rank insights. The severity order is kept."""


class TicketingError(PipelineError):
    """The ticketing system refused or failed to create an issue."""


class ConflictError(PipelineError):
    """A run was requested while another one is still running."""

    def __init__(self, job_id):
        super().__init__(f"Batch job {job_id} is already running")
        self.job_id = job_id
