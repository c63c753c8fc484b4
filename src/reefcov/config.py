"""Run configuration for covariate extraction.

Settings are validated with pydantic. Values can come from keyword
arguments, from ``REEFCOV_*`` environment variables via
:meth:`ExtractionSettings.from_env`, or from CLI flags layered on top.
"""

import os
from typing import Literal, Optional

from pydantic import BaseModel, Field

# Statistics the zonal service computes and that have a combining operator
SUPPORTED_STATS = ("max", "min", "mean", "sum")

ENV_PREFIX = "REEFCOV_"


class ExtractionSettings(BaseModel):
    """Settings for one extraction run.

    Attributes:
        catalog_url: Base URL of the STAC API (no trailing /collections)
        zonal_url: Base URL of the zonal statistics service
        collection_id: Catalog collection to read. Always explicit; the
            first collection a catalog lists is not necessarily the right one.
        asset_key: Key of the asset to use within each item; first asset if None
        band: Band object in the zonal response holding the statistic
        stat: Statistic to request and reduce
        window_months: Length of the trailing window, in calendar months
        buffer_radius_m: Buffer applied to every record; None uses each record's own
        page_limit: Items requested per catalog page
        max_pages: Ceiling on catalog pages before assuming a pagination loop
        request_timeout: Per-request HTTP timeout in seconds
        max_workers: Records processed concurrently (1 = sequential)
    """

    catalog_url: str = Field(..., min_length=1, description="STAC API base URL")
    zonal_url: str = Field(..., min_length=1, description="Zonal statistics base URL")
    collection_id: str = Field(..., min_length=1, description="Catalog collection id")
    asset_key: Optional[str] = Field(default=None, description="Asset key within each item")
    band: str = Field(default="band_1", description="Band key in the zonal response")
    stat: Literal["max", "min", "mean", "sum"] = Field(default="max")
    window_months: int = Field(default=12, ge=1, le=600)
    buffer_radius_m: Optional[float] = Field(default=None, gt=0)
    page_limit: int = Field(default=100, ge=1, le=10000)
    max_pages: int = Field(default=1000, ge=1)
    request_timeout: float = Field(default=60.0, gt=0)
    max_workers: int = Field(default=1, ge=1, le=64)

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "catalog_url": "https://stac.example.org",
                    "zonal_url": "https://zonal.example.org",
                    "collection_id": "noaa-crw-dhw-monthly",
                    "stat": "max",
                    "window_months": 12,
                }
            ]
        },
    }

    @classmethod
    def from_env(cls, **overrides) -> "ExtractionSettings":
        """Build settings from REEFCOV_* environment variables.

        Keyword overrides that are not None win over the environment, e.g.
        ``REEFCOV_COLLECTION_ID=dhw`` is replaced by ``collection_id="sst"``.
        """
        values = {}
        for name in cls.model_fields:
            env_value = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if env_value is not None and env_value != "":
                values[name] = env_value
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
