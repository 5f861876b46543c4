"""
URL configuration for clipcache project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/stable/topics/http/urls/
"""

from django.urls import path

from artifacts.views import (
    convert_view,
    download_view,
    storage_cleanup_view,
    storage_records_view,
    storage_stats_view,
    video_download_view,
)

urlpatterns = [
    # Acquisition
    path('api/convert', convert_view, name='convert'),
    path('api/video-download', video_download_view, name='video_download'),
    # Serving
    path('api/download/<str:filename>', download_view, name='download'),
    # Storage bookkeeping
    path('api/storage/stats', storage_stats_view, name='storage_stats'),
    path('api/storage/records', storage_records_view, name='storage_records'),
    path('api/storage/cleanup', storage_cleanup_view, name='storage_cleanup'),
]
