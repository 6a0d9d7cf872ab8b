import logging
import os
import sys
import threading

logger = logging.getLogger(__name__)

# Descriptors for standard output and standard error
_STD_FDS = (1, 2)

# Bytes read from the pipe per call
_CHUNK_SIZE = 64 * 1024

_ENCODING = "utf-8"


class ResourceError(OSError):
    """Raised when the pipe or descriptors needed for a capture cannot be allocated."""
    pass


class _PipeDrainer(threading.Thread):
    """Reads the pipe until EOF so writers never block on a full pipe buffer."""

    def __init__(self, read_fd):
        super().__init__(name="veil-output-drain", daemon=True)
        self.read_fd = read_fd
        self.listening = threading.Event()
        self.buffer = bytearray()
        self.error = None

    def run(self):
        self.listening.set()
        try:
            while True:
                chunk = os.read(self.read_fd, _CHUNK_SIZE)
                if not chunk:
                    break
                self.buffer.extend(chunk)
        except OSError as e:
            # Keep what was read; the caller decides what to do with the error
            self.error = e


class OutputCapture:
    """
    Redirect standard output and standard error into a pipe for the
    duration of a ``with`` block.

    Both ``sys.stdout``/``sys.stderr`` and, unless disabled, file descriptors
    1 and 2 are pointed at the pipe, so writes from C extensions and child
    processes that inherit the descriptors are captured as well. A background
    thread drains the pipe while the block runs.

    The original streams and descriptors are restored on every exit path,
    including exceptions raised inside the block, which then propagate.
    The captured text is available as ``output`` once the block has exited.

    Redirection is process wide: do not run two captures concurrently.
    """

    def __init__(self, capture_fds=True):
        """
        Args:
            capture_fds (bool): Also redirect file descriptors 1 and 2
        """
        self.capture_fds = capture_fds
        self.output = None
        self._read_fd = None
        self._writer = None
        self._drainer = None
        self._saved_fds = {}
        self._stdout = None
        self._stderr = None

    def __enter__(self):
        try:
            read_fd, write_fd = os.pipe()
        except OSError as e:
            raise ResourceError(e.errno, f"Unable to create capture pipe: {e.strerror}") from e

        try:
            saved_fds = self._save_std_fds() if self.capture_fds else {}
        except OSError as e:
            os.close(read_fd)
            os.close(write_fd)
            raise ResourceError(e.errno, f"Unable to duplicate standard descriptors: {e.strerror}") from e

        drainer = _PipeDrainer(read_fd)
        try:
            drainer.start()
        except RuntimeError as e:
            for saved in saved_fds.values():
                os.close(saved)
            os.close(read_fd)
            os.close(write_fd)
            raise ResourceError(f"Unable to start capture reader: {e}") from e
        drainer.listening.wait()

        self._stdout = sys.stdout
        self._stderr = sys.stderr
        self._saved_fds = saved_fds
        self._read_fd = read_fd
        self._drainer = drainer
        try:
            _flush(self._stdout, self._stderr)
            if saved_fds:
                _flush(sys.__stdout__, sys.__stderr__)
            for fd in saved_fds:
                os.dup2(write_fd, fd)
            self._writer = os.fdopen(write_fd, "w", buffering=1, encoding=_ENCODING, errors="backslashreplace")
        except BaseException:
            self._restore_std_fds()
            os.close(write_fd)
            drainer.join()
            os.close(read_fd)
            raise

        sys.stdout = self._writer
        sys.stderr = self._writer
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        try:
            if not self._writer.closed:
                self._writer.flush()
        finally:
            try:
                self._restore_std_fds()
            finally:
                sys.stdout = self._stdout
                sys.stderr = self._stderr
                # Closing the last write end is the EOF that stops the drainer
                self._writer.close()
                self._drainer.join()
                os.close(self._read_fd)

        if self._drainer.error is not None:
            logger.debug(f"Capture reader stopped early: {self._drainer.error}")
        self.output = bytes(self._drainer.buffer).decode(_ENCODING, errors="replace")
        return False

    def _save_std_fds(self):
        saved = {}
        try:
            for fd in _STD_FDS:
                saved[fd] = os.dup(fd)
        except OSError:
            for dup_fd in saved.values():
                os.close(dup_fd)
            raise
        return saved

    def _restore_std_fds(self):
        if not self._saved_fds:
            return
        try:
            # Text still buffered in the interpreter's own streams belongs to the capture
            _flush(sys.__stdout__, sys.__stderr__)
        finally:
            for fd, saved in self._saved_fds.items():
                os.dup2(saved, fd)
                os.close(saved)
            self._saved_fds = {}


def _flush(*streams):
    for stream in streams:
        if stream is not None and not getattr(stream, "closed", False):
            stream.flush()


def capture_output(func, capture_fds=True):
    """
    Run ``func`` and return everything it wrote to standard output and
    standard error as a single string.

    The call blocks until ``func`` returns; there is no timeout.

    Args:
        func (callable): Zero-argument callable to run
        capture_fds (bool): Also capture writes made directly to file
                            descriptors 1 and 2 (C code, child processes)

    Returns:
        str: The captured output

    Raises:
        ResourceError: If the pipe cannot be set up; ``func`` is not called
    """
    logger.debug(f"Capturing output of {getattr(func, '__name__', func)!r}")
    capture = OutputCapture(capture_fds=capture_fds)
    with capture:
        func()
    logger.debug(f"Captured {len(capture.output)} characters of output")
    return capture.output
