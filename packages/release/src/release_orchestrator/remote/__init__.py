from .github import GitHubReleaseService, expand_upload_url
from .http import DeterministicExponentialBackoff, make_http_client, make_timeout
from .models import ReleaseRecord, UploadedAsset
from .service import ReleaseService, RetryingReleaseService

__all__ = [
    "GitHubReleaseService",
    "expand_upload_url",
    "DeterministicExponentialBackoff",
    "make_http_client",
    "make_timeout",
    "ReleaseRecord",
    "UploadedAsset",
    "ReleaseService",
    "RetryingReleaseService",
]
