"""Exception types shared across the ingestion pipeline."""


class IngestError(Exception):
    """Base class for pipeline errors."""


class ConfigError(IngestError):
    """Fatal configuration problem detected before the run loop starts.

    Missing credentials, a missing destination tab or missing header
    columns all land here.  The run aborts without side effects.
    """

    def __init__(self, problems):
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class LabelStoreError(IngestError):
    """Label lookup or label modification failed on the mail source."""


class StoreError(IngestError):
    """Reading from or appending to the destination table failed."""
