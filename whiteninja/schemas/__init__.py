from whiteninja.schemas.build import (
    BuildOptions,
    DownloadRequest,
    SuggestConfigRequest,
    SuggestConfigResponse,
    validate_brief,
    validate_options,
    validate_start_request,
)

__all__ = [
    'BuildOptions',
    'DownloadRequest',
    'SuggestConfigRequest',
    'SuggestConfigResponse',
    'validate_brief',
    'validate_options',
    'validate_start_request',
]
