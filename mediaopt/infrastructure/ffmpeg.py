import logging
import queue
import subprocess
import threading
import time
from collections import deque
from pathlib import Path
from typing import Deque, List, Optional
from mediaopt.config.models import RunConfig
from mediaopt.domain.cancellation import CancellationToken
from mediaopt.domain.errors import Cancelled, EncoderError, ProcessingTimeout
from mediaopt.infrastructure.file_ops import remove_quietly
from mediaopt.infrastructure.tool_resolver import ToolResolver


class FFmpegAdapter:
    """Wrapper around ffmpeg for H.264/AAC MP4 re-encoding."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", crf: int = 26, audio_bitrate: str = "128k",
                 preset: str = "veryslow"):
        self.ffmpeg_path = ffmpeg_path
        self.crf = crf
        self.audio_bitrate = audio_bitrate
        self.preset = preset
        self.logger = logging.getLogger(__name__)

    @classmethod
    def from_config(cls, config: RunConfig, resolver: ToolResolver) -> "FFmpegAdapter":
        return cls(
            ffmpeg_path=resolver.require("ffmpeg"),
            crf=config.video_crf,
            audio_bitrate=config.audio_bitrate,
        )

    def _build_command(self, source: Path, destination: Path) -> List[str]:
        return [
            self.ffmpeg_path,
            "-y",
            "-hide_banner",
            "-i", str(source),
            "-c:v", "libx264",
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-c:a", "aac",
            "-b:a", self.audio_bitrate,
            "-map_metadata", "0",
            "-movflags", "use_metadata_tags",
            "-f", "mp4",
            str(destination),
        ]

    def _stop(self, process: subprocess.Popen) -> None:
        process.terminate()
        try:
            process.wait(timeout=3)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()

    def encode(
        self,
        source: Path,
        destination: Path,
        timeout: Optional[float] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> None:
        """Runs ffmpeg until it exits, the token is cancelled or the timeout passes."""
        filename = source.name
        start_time = time.monotonic()
        deadline = start_time + timeout if timeout is not None else None

        cmd = self._build_command(source, destination)
        self.logger.debug(f"FFMPEG_CMD: {' '.join(cmd)}")

        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                universal_newlines=True,
                bufsize=1
            )
        except OSError as exc:
            raise EncoderError(f"Cannot start ffmpeg for {source}: {exc}") from exc

        # Last lines of output, reported when ffmpeg fails
        tail: Deque[str] = deque(maxlen=15)
        output_queue: "queue.Queue[Optional[str]]" = queue.Queue()

        def _reader():
            if not process.stdout:
                output_queue.put(None)
                return
            for line in process.stdout:
                output_queue.put(line)
            output_queue.put(None)

        reader_thread = threading.Thread(target=_reader, daemon=True)
        reader_thread.start()

        try:
            while True:
                if cancel is not None and cancel.cancelled:
                    self.logger.info(f"FFMPEG_INTERRUPTED: {filename} (cancelled)")
                    self._stop(process)
                    remove_quietly(destination)
                    raise Cancelled(f"Video encoding cancelled: {source}")

                if deadline is not None and time.monotonic() >= deadline:
                    self.logger.warning(f"FFMPEG_TIMEOUT: {filename} after {timeout:.0f}s")
                    self._stop(process)
                    remove_quietly(destination)
                    raise ProcessingTimeout(f"ffmpeg exceeded {timeout:.0f}s for {source}", limit_seconds=timeout)

                try:
                    line = output_queue.get(timeout=0.1)
                except queue.Empty:
                    if process.poll() is not None:
                        break
                    continue

                if line is None:
                    break
                tail.append(line.rstrip())

            process.wait()
        except KeyboardInterrupt:
            self.logger.info(f"FFMPEG_INTERRUPTED: {filename} (KeyboardInterrupt)")
            self._stop(process)
            remove_quietly(destination)
            raise

        elapsed = time.monotonic() - start_time
        if process.returncode != 0:
            remove_quietly(destination)
            details = " | ".join(line for line in tail if line)
            self.logger.info(f"FFMPEG_END: {filename} status=failed code={process.returncode} elapsed={elapsed:.2f}s")
            raise EncoderError(f"ffmpeg exited with code {process.returncode} for {source}: {details}")

        if not destination.exists():
            raise EncoderError(f"ffmpeg reported success but produced no output for {source}")

        self.logger.info(f"FFMPEG_END: {filename} status=completed elapsed={elapsed:.2f}s")
