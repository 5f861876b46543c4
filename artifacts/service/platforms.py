"""
Supported platform detection.

Determines whether a URL belongs to a supported video platform and which
downloader flags and timeout class apply to it.
"""

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from artifacts.service.errors import ValidationError


@dataclass(frozen=True)
class Platform:
    """A video platform the downloader is allowed to fetch from"""

    name: str
    label: str
    hosts: tuple
    # Platforms that throttle aggressively get retry/backoff flags and the long timeout
    needs_backoff: bool = False
    extra_args: tuple = ()

    def matches_host(self, host):
        host = host.lower()
        return any(host == h or host.endswith(f'.{h}') for h in self.hosts)


BACKOFF_ARGS = (
    '--retries', '10',
    '--fragment-retries', '10',
    '--extractor-retries', '5',
    '--retry-sleep', 'exp=1:30',
)

PLATFORMS = [
    Platform(name='bilibili', label='Bilibili', hosts=('bilibili.com', 'b23.tv')),
    Platform(name='youtube', label='YouTube', hosts=('youtube.com', 'youtu.be')),
    Platform(
        name='douyin',
        label='Douyin',
        hosts=('douyin.com', 'iesdouyin.com'),
        needs_backoff=True,
        extra_args=BACKOFF_ARGS,
    ),
    Platform(
        name='xiaohongshu',
        label='Xiaohongshu',
        hosts=('xiaohongshu.com', 'xhslink.com'),
        needs_backoff=True,
        extra_args=BACKOFF_ARGS,
    ),
]


def detect_platform(url) -> Optional[Platform]:
    """
    Find the supported platform a URL belongs to.

    Args:
        url: The source URL

    Returns:
        Platform or None if the URL is not from a supported platform
    """
    if not url or not isinstance(url, str):
        return None

    parsed = urlparse(url.strip())
    if parsed.scheme not in ('http', 'https') or not parsed.hostname:
        return None

    for platform in PLATFORMS:
        if platform.matches_host(parsed.hostname):
            return platform
    return None


def validate_url(url) -> Platform:
    """
    Validate a user-supplied URL.

    Raises:
        ValidationError: If the URL is empty or not from a supported platform
    """
    if not url or not isinstance(url, str):
        raise ValidationError('Please provide a video link')

    platform = detect_platform(url)
    if platform is None:
        labels = ', '.join(p.label for p in PLATFORMS)
        raise ValidationError(f'Unsupported link. Supported platforms: {labels}')
    return platform
