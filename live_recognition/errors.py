"""
Error taxonomy for Live Recognition.

Fatal errors gate dependent functionality for the rest of the process.
Recoverable errors are reported to the operator as transient notices and
never propagate past the component that produced them.
"""

from typing import Optional


class RecognitionError(Exception):
    """Base class for enrollment and recognition errors."""

    fatal = False
    recoverable = True
    notice = 'Something went wrong'

    def __init__(self, message: str = '', notice: Optional[str] = None):
        if notice is not None:
            self.notice = notice
        super().__init__(message or self.notice)


class ModelLoadFailure(RecognitionError):
    """Face models could not be loaded. Disables the whole feature set."""

    fatal = True
    recoverable = False
    notice = 'Failed to load AI models'


class ModelsLoading(RecognitionError):
    """Models are still loading; retry once they are ready."""

    notice = 'AI models are still loading'


class DeviceEnumerationFailure(RecognitionError):
    """Camera list unavailable. Camera selection stays empty."""

    recoverable = False
    notice = 'Camera access denied'


class StreamError(RecognitionError):
    """Selected camera stopped delivering frames or failed to open."""

    recoverable = False
    notice = 'Camera access denied'


class EmptyName(RecognitionError):
    notice = 'Enter a name first'


class CameraNotReady(RecognitionError):
    notice = 'Camera not ready'


class NoFaceDetected(RecognitionError):
    notice = 'No face detected'


class ExtractionFault(RecognitionError):
    """The descriptor extractor raised internally."""

    notice = 'Error capturing face'


class StreamBusyError(RuntimeError):
    """
    Two operations tried to sample the live stream at the same time.

    Callers are expected to serialize enrollment and detection; hitting this
    means that contract was broken.
    """
