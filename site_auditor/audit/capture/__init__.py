"""Browser-automation evidence capture."""

from .browser_factory import (
    BrowserConfig,
    BrowserEngineType,
    BrowserFactory,
    BrowserSession,
    DeviceProfile,
    DESKTOP,
    MOBILE,
    device_for,
)
from .page_session import EvidencePageSession, PageSessionConfig, WaitStrategy
from .accessibility import AccessibilityRuleRunner, partition_results
from .engine import EvidenceCaptureWorker, CaptureWorkerConfig

__all__ = [
    'BrowserConfig',
    'BrowserEngineType',
    'BrowserFactory',
    'BrowserSession',
    'DeviceProfile',
    'DESKTOP',
    'MOBILE',
    'device_for',
    'EvidencePageSession',
    'PageSessionConfig',
    'WaitStrategy',
    'AccessibilityRuleRunner',
    'partition_results',
    'EvidenceCaptureWorker',
    'CaptureWorkerConfig',
]
