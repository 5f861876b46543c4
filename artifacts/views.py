import json
import logging
from pathlib import Path

from django.http import FileResponse, JsonResponse
from django.urls import reverse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from artifacts.runtime import get_runtime
from artifacts.service.config import (
    get_orphan_ttl,
    get_serve_grace,
    get_serve_recheck_delay,
)
from artifacts.service.constants import (
    CONTENT_TYPES,
    MEDIA_TYPE_AUDIO,
    MEDIA_TYPE_VIDEO,
    MEDIA_TYPES,
    SERVABLE_EXTENSIONS,
)
from artifacts.service.errors import AcquisitionError, StorageIOError, ValidationError
from artifacts.service.platforms import validate_url
from artifacts.service.store import ArtifactStore

logger = logging.getLogger(__name__)


def _error(message, status):
    return JsonResponse({'success': False, 'error': message}, status=status)


def _download_url(filename):
    return reverse('download', args=[filename])


def _parse_json_body(request):
    """Return the request body as a dict, or None if it is not a JSON object"""
    try:
        payload = json.loads(request.body or b'{}')
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    return payload


def _acquire(url, media_type):
    """
    Validate, run the pipeline and build the JSON response.

    Shared by the audio conversion and video download endpoints.
    """
    try:
        validate_url(url)
        if media_type not in MEDIA_TYPES:
            raise ValidationError(f"Invalid type. Must be one of: {', '.join(MEDIA_TYPES)}")
    except ValidationError as e:
        return _error(e.message, 400)

    url = url.strip()
    logger.info('Conversion requested: %s (%s)', url, media_type)

    try:
        handle = get_runtime().pipeline.acquire(url, media_type)
    except AcquisitionError as e:
        timed_out = getattr(e, 'timed_out', False)
        logger.error('Conversion of %s failed: %s', url, e.message)
        return _error(e.message, 504 if timed_out else 500)

    return JsonResponse(
        {
            'success': True,
            'downloadUrl': _download_url(handle.filename),
            'filename': handle.filename,
            'fileSize': handle.size_bytes,
            'expiresAt': handle.expires_at.isoformat(),
            'cached': handle.cache_hit,
        }
    )


@csrf_exempt
@require_http_methods(['POST'])
def convert_view(request):
    """
    Convert a video URL to a downloadable artifact.

    Body (JSON):
        url (required): Video URL from a supported platform
        type (optional): audio|video, defaults to audio

    Returns:
        JSON response with the download URL, size and expiry
    """
    payload = _parse_json_body(request)
    if payload is None:
        return _error('Malformed request body', 400)

    return _acquire(payload.get('url'), payload.get('type') or MEDIA_TYPE_AUDIO)


@csrf_exempt
@require_http_methods(['POST'])
def video_download_view(request):
    """Same as convert_view with the type fixed to a capped-resolution video"""
    payload = _parse_json_body(request)
    if payload is None:
        return _error('Malformed request body', 400)

    return _acquire(payload.get('url'), MEDIA_TYPE_VIDEO)


@require_http_methods(['GET'])
def download_view(request, filename):
    """
    Serve an artifact by filename.

    Registered artifacts are served until they expire (410 afterwards).
    Files present in the store without a registry entry, typically left over
    from before a restart, are served with a conservative synthetic expiry.
    """
    if not ArtifactStore.is_safe_filename(filename):
        return _error('Invalid filename', 400)

    extension = Path(filename).suffix.lower()
    if extension not in SERVABLE_EXTENSIONS:
        return _error('Unsupported file type', 400)

    runtime = get_runtime()
    registry = runtime.registry
    now = registry.now()

    record = registry.lookup_by_filename(filename)
    if not runtime.store.exists(filename):
        if record is not None:
            registry.remove(filename)
        return _error('File does not exist or has expired', 404)

    if record is None:
        expires_at = now + get_orphan_ttl()
    elif record.is_expired(now):
        try:
            registry.discard(filename)
        except StorageIOError as e:
            logger.error('Failed to delete expired artifact %s: %s', filename, e)
        return _error('File has expired', 410)
    else:
        expires_at = record.expires_at

    try:
        artifact = open(runtime.store.path_for(filename), 'rb')
    except OSError as e:
        # Reclaimed between the existence check and the open
        logger.warning('Could not open %s: %s', filename, e)
        return _error('File does not exist or has expired', 404)

    logger.info('Serving %s', filename)
    response = FileResponse(
        artifact,
        as_attachment=True,
        filename=filename,
        content_type=CONTENT_TYPES[extension],
    )
    response['Cache-Control'] = 'no-cache'
    response['X-File-Expires'] = expires_at.isoformat()

    if record is not None:
        runtime.reclaimer.schedule_recheck(filename, get_serve_recheck_delay(), get_serve_grace())

    return response


@require_http_methods(['GET'])
def storage_stats_view(request):
    """Registry totals: file count, aggregate size and expired count"""
    stats = get_runtime().registry.stats()
    return JsonResponse(
        {
            'success': True,
            'stats': {
                'totalFiles': stats.count,
                'totalSize': stats.total_bytes,
                'totalSizeMB': round(stats.total_bytes / (1024 * 1024), 2),
                'expiredFiles': stats.expired_count,
            },
        }
    )


@require_http_methods(['GET'])
def storage_records_view(request):
    """Per-artifact listing, most recent first"""
    registry = get_runtime().registry
    now = registry.now()
    records = sorted(registry.all_records(), key=lambda r: r.created_at, reverse=True)

    return JsonResponse(
        {
            'success': True,
            'records': [
                {
                    'filename': r.filename,
                    'originalUrl': r.source_url,
                    'mediaType': r.media_type,
                    'createdAt': r.created_at.isoformat(),
                    'expiresAt': r.expires_at.isoformat(),
                    'size': r.size_bytes,
                    'expired': r.is_expired(now),
                    'timeLeftSeconds': r.seconds_remaining(now),
                    'downloadUrl': _download_url(r.filename),
                }
                for r in records
            ],
        }
    )


@csrf_exempt
@require_http_methods(['POST'])
def storage_cleanup_view(request):
    """Run a reclamation pass right now"""
    runtime = get_runtime()
    report = runtime.reclaimer.run_once()
    stats = runtime.registry.stats()

    return JsonResponse(
        {
            'success': True,
            'message': 'Cleanup complete',
            'reclaimed': len(report.reclaimed),
            'orphansRemoved': len(report.orphans_removed),
            'scratchRemoved': len(report.scratch_removed),
            'failed': len(report.failed),
            'remainingFiles': stats.count,
        }
    )
