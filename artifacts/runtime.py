"""
Composition root for the artifact service.

Builds one store, registry, pipeline and reclaimer from settings and wires
them together. The app config owns the instance for the life of the process;
views and commands reach it through get_runtime().
"""

import logging
from dataclasses import dataclass

from django.apps import apps

from artifacts.service import config
from artifacts.service.pipeline import AcquisitionPipeline
from artifacts.service.reclaimer import ExpiryReclaimer
from artifacts.service.registry import ArtifactRegistry
from artifacts.service.store import ArtifactStore

logger = logging.getLogger(__name__)


@dataclass
class ArtifactRuntime:
    store: ArtifactStore
    registry: ArtifactRegistry
    pipeline: AcquisitionPipeline
    reclaimer: ExpiryReclaimer


def build_runtime(runner=None, clock=None):
    """
    Construct a runtime from the current Django settings.

    Args:
        runner: Optional replacement for run_process
        clock: Optional replacement for the registry clock

    Returns:
        ArtifactRuntime
    """
    store = ArtifactStore(config.get_store_dir(), config.get_scratch_dir())

    registry_kwargs = {'ttl': config.get_ttl()}
    if clock is not None:
        registry_kwargs['clock'] = clock
    registry = ArtifactRegistry(store, **registry_kwargs)

    pipeline_kwargs = {}
    if runner is not None:
        pipeline_kwargs['runner'] = runner
    pipeline = AcquisitionPipeline(
        registry,
        store,
        ytdlp_binary=config.get_ytdlp_binary(),
        ffmpeg_binary=config.resolve_ffmpeg_binary(),
        download_timeout=config.get_download_timeout(),
        slow_download_timeout=config.get_download_timeout(slow=True),
        transcode_timeout=config.get_transcode_timeout(),
        max_buffer=config.get_max_buffer(),
        max_concurrent=config.get_max_concurrent_acquisitions(),
        **pipeline_kwargs,
    )

    reclaimer = ExpiryReclaimer(
        registry,
        orphan_ttl=config.get_orphan_ttl(),
        scratch_ttl=config.get_scratch_ttl(),
    )
    return ArtifactRuntime(store=store, registry=registry, pipeline=pipeline, reclaimer=reclaimer)


def get_runtime():
    """Return the runtime owned by the artifacts app config"""
    return apps.get_app_config('artifacts').get_runtime()
