"""
Central configuration and tunable constants.

Values can be overridden through environment variables; the CLI passes its own
options on top of these defaults.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

DEFAULT_AWS_REGION = "us-east-1"

# Client expectation only, never used for scheduling (milliseconds)
BASE_SCAN_DURATION_MS = 300000
PER_REGION_DURATION_MS = 60000
PER_SERVICE_DURATION_MS = 30000
PER_FRAMEWORK_DURATION_MS = 60000

SUPPORTED_REGIONS: List[str] = [
    "us-east-1",
    "us-east-2",
    "us-west-1",
    "us-west-2",
    "eu-west-1",
    "eu-west-2",
    "eu-west-3",
    "eu-central-1",
    "ap-southeast-1",
    "ap-southeast-2",
    "ap-northeast-1",
    "ap-northeast-2",
    "ca-central-1",
    "sa-east-1",
]


@dataclass
class AWSCredentials:
    """Credentials used to build the boto3 session for one account"""
    profile: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None
    role_arn: Optional[str] = None
    external_id: Optional[str] = None
    region: str = DEFAULT_AWS_REGION


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _env_list(name: str, default: List[str]) -> List[str]:
    value = os.environ.get(name)
    if not value:
        return list(default)
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class ScannerSettings:
    """Runtime settings for the orchestrator and discovery fan-out"""
    api_base_url: str = "http://localhost:8080"
    max_discovery_workers: int = 10
    max_concurrent_scans: int = 4
    default_page_size: int = 100
    default_region: str = DEFAULT_AWS_REGION
    supported_regions: List[str] = field(default_factory=lambda: list(SUPPORTED_REGIONS))

    @classmethod
    def from_env(cls) -> "ScannerSettings":
        return cls(
            api_base_url=os.environ.get(
                "COMPLIANCE_SCANNER_API_BASE_URL", cls.api_base_url
            ).rstrip("/"),
            max_discovery_workers=_env_int(
                "COMPLIANCE_SCANNER_MAX_DISCOVERY_WORKERS", cls.max_discovery_workers
            ),
            max_concurrent_scans=_env_int(
                "COMPLIANCE_SCANNER_MAX_CONCURRENT_SCANS", cls.max_concurrent_scans
            ),
            default_page_size=_env_int(
                "COMPLIANCE_SCANNER_PAGE_SIZE", cls.default_page_size
            ),
            default_region=os.environ.get("AWS_DEFAULT_REGION", DEFAULT_AWS_REGION),
            supported_regions=_env_list("COMPLIANCE_SCANNER_SUPPORTED_REGIONS", SUPPORTED_REGIONS),
        )
