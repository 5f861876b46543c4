"""
Artifact format constants.

Centralized definitions of media types, target extensions and content types.
"""

MEDIA_TYPE_AUDIO = 'audio'
MEDIA_TYPE_VIDEO = 'video'

MEDIA_TYPES = [MEDIA_TYPE_AUDIO, MEDIA_TYPE_VIDEO]

# Extension produced by the transcoder for each media type
TARGET_EXTENSIONS = {
    MEDIA_TYPE_AUDIO: '.mp3',
    MEDIA_TYPE_VIDEO: '.mp4',
}

# Only these extensions may be served
SERVABLE_EXTENSIONS = ['.mp3', '.mp4']

CONTENT_TYPES = {
    '.mp3': 'audio/mpeg',
    '.mp4': 'video/mp4',
}

# Leftovers yt-dlp writes next to an in-progress download
PARTIAL_DOWNLOAD_SUFFIXES = ['.part', '.ytdl', '.temp']


def media_type_for_extension(extension):
    """Map a served extension back to its media type, or None"""
    extension = extension.lower()
    for media_type, target in TARGET_EXTENSIONS.items():
        if target == extension:
            return media_type
    return None
