"""Exception types for covariate extraction.

Only catalog-level failures abort a run. Per-asset and per-record problems
are raised inside a component, caught at its boundary and turned into a
status value plus a warning.
"""


class ReefCovError(Exception):
    """Base class for all reefcov errors."""


class CatalogUnavailable(ReefCovError):
    """A catalog page (initial or continuation) could not be fetched or parsed.

    Fatal: a truncated catalog silently produces wrong covariates.
    """

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Catalog request failed for {url}: {reason}")


class PaginationLoopDetected(CatalogUnavailable):
    """The catalog kept returning continuation links past the page ceiling,
    or handed back a link it had already served."""


class AssetTimestampUnresolvable(ReefCovError):
    """A catalog item has no usable timestamp or asset reference.

    Recoverable: the item is dropped from the index.
    """

    def __init__(self, item_id: str | None, reason: str):
        self.item_id = item_id
        self.reason = reason
        super().__init__(f"Item {item_id!r} skipped: {reason}")


class ZonalRequestFailed(ReefCovError):
    """A zonal statistics request failed or returned an unusable body.

    Recoverable: recorded as ``request_failed`` for that asset.
    """

    def __init__(self, asset_ref: str, reason: str):
        self.asset_ref = asset_ref
        self.reason = reason
        super().__init__(f"Zonal stats failed for {asset_ref}: {reason}")


class ExtractionCancelled(ReefCovError):
    """The run was stopped between records by the operator.

    Attributes:
        completed: CovariateResults finished before the stop, in input order
            (unfinished records are omitted).
    """

    def __init__(self, completed: list):
        self.completed = completed
        super().__init__(f"Extraction cancelled after {len(completed)} records")
