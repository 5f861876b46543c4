"""
Error taxonomy for artifact acquisition.

Every error raised out of the acquisition pipeline derives from
AcquisitionError and carries a human-readable message that the web layer
returns to the client as-is.
"""


class AcquisitionError(Exception):
    """Base class for errors surfaced to callers of the pipeline"""

    default_message = 'Conversion failed'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AcquisitionError):
    """Bad or unsupported URL. User-correctable, nothing was run."""

    default_message = 'Please provide a valid link from a supported platform'


class _StageFailed(AcquisitionError):
    timeout_message = 'Operation timed out, please retry'

    def __init__(self, message=None, timed_out=False):
        self.timed_out = timed_out
        if timed_out and message is None:
            message = self.timeout_message
        super().__init__(message)


class DownloadFailed(_StageFailed):
    default_message = 'Video download failed'
    timeout_message = 'Download timed out, please retry'


class OutputMissing(AcquisitionError):
    default_message = 'Download finished but no output file was found'


class TranscodeFailed(_StageFailed):
    default_message = 'Transcoding failed'
    timeout_message = 'Transcoding timed out, please retry'


class EmptyArtifact(AcquisitionError):
    default_message = 'The converted file is empty'


class StorageIOError(AcquisitionError):
    default_message = 'Storage operation failed'
