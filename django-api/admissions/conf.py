"""Admission tuning read from ``settings.ADMISSIONS``."""

from dataclasses import dataclass
from typing import Self

from django.conf import settings


@dataclass(frozen=True)
class AdmissionSettings:
    register_timeout_seconds: float = 10.0
    referral_code_length: int = 6
    referral_code_max_attempts: int = 20
    release_max_attempts: int = 3
    availability_cache_seconds: int = 5
    frontend_uri: str = "http://localhost:4321"

    def __post_init__(self) -> None:
        if self.register_timeout_seconds <= 0:
            raise ValueError("REGISTER_TIMEOUT_SECONDS must be positive")
        if self.referral_code_length < 4:
            raise ValueError("REFERRAL_CODE_LENGTH must be at least 4")
        if self.referral_code_max_attempts < 1 or self.release_max_attempts < 1:
            raise ValueError("Attempt limits must be at least 1")

    @classmethod
    def from_settings(cls) -> Self:
        options = getattr(settings, "ADMISSIONS", {})
        defaults = cls()
        return cls(
            register_timeout_seconds=float(
                options.get("REGISTER_TIMEOUT_SECONDS", defaults.register_timeout_seconds)
            ),
            referral_code_length=int(
                options.get("REFERRAL_CODE_LENGTH", defaults.referral_code_length)
            ),
            referral_code_max_attempts=int(
                options.get("REFERRAL_CODE_MAX_ATTEMPTS", defaults.referral_code_max_attempts)
            ),
            release_max_attempts=int(
                options.get("RELEASE_MAX_ATTEMPTS", defaults.release_max_attempts)
            ),
            availability_cache_seconds=int(
                options.get("AVAILABILITY_CACHE_SECONDS", defaults.availability_cache_seconds)
            ),
            frontend_uri=str(options.get("FRONTEND_URI", defaults.frontend_uri)).rstrip("/"),
        )
