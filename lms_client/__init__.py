# -*- coding: utf-8 -*-
from lms_client.client import LMS_API_BASE_URL, AuthContext, LMSClient
from lms_client.errors import (
    AuthRequired,
    CourseFetchFailed,
    FetchError,
    FetchTimeout,
    ItemFetchFailed,
    LMSError,
    NotFound,
)
from lms_client.probe import probe

__all__ = [
    "LMS_API_BASE_URL",
    "AuthContext",
    "AuthRequired",
    "CourseFetchFailed",
    "FetchError",
    "FetchTimeout",
    "ItemFetchFailed",
    "LMSClient",
    "LMSError",
    "NotFound",
    "probe",
]
