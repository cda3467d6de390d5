import pytest
from pathlib import Path
from unittest.mock import patch, MagicMock
from mediaopt.config.models import RunConfig
from mediaopt.domain.cancellation import CancellationToken
from mediaopt.domain.errors import Cancelled, EncoderError, MissingDependencyError, ProcessingTimeout
from mediaopt.infrastructure.ffmpeg import FFmpegAdapter
from mediaopt.infrastructure.tool_resolver import ToolResolver


def _mock_process(mock_popen, lines, returncode=0):
    process_instance = mock_popen.return_value
    process_instance.stdout = lines
    process_instance.wait.return_value = returncode
    process_instance.returncode = returncode
    # the loop ends on the reader sentinel, not on poll()
    process_instance.poll.return_value = None
    return process_instance


def test_ffmpeg_command_generation():
    adapter = FFmpegAdapter(ffmpeg_path="/opt/ffmpeg", crf=28, audio_bitrate="96k")
    cmd = adapter._build_command(Path("in.mov"), Path("out.mediaopt-tmp.mp4"))

    assert cmd[0] == "/opt/ffmpeg"
    assert cmd[cmd.index("-i") + 1] == "in.mov"
    assert cmd[cmd.index("-c:v") + 1] == "libx264"
    assert cmd[cmd.index("-preset") + 1] == "veryslow"
    assert cmd[cmd.index("-crf") + 1] == "28"
    assert cmd[cmd.index("-c:a") + 1] == "aac"
    assert cmd[cmd.index("-b:a") + 1] == "96k"
    assert cmd[cmd.index("-map_metadata") + 1] == "0"
    # container is forced because the staging name is not a plain .mp4
    assert cmd[cmd.index("-f") + 1] == "mp4"
    assert cmd[-1] == "out.mediaopt-tmp.mp4"


def test_ffmpeg_from_config_uses_resolved_binary():
    resolver = MagicMock(spec=ToolResolver)
    resolver.require.return_value = "/bundled/ffmpeg"

    adapter = FFmpegAdapter.from_config(RunConfig(video_crf=30, audio_bitrate="192k"), resolver)

    assert adapter.ffmpeg_path == "/bundled/ffmpeg"
    assert adapter.crf == 30
    assert adapter.audio_bitrate == "192k"


def test_ffmpeg_from_config_missing_binary():
    resolver = ToolResolver(search_path=False)
    with pytest.raises(MissingDependencyError):
        FFmpegAdapter.from_config(RunConfig(), resolver)


def test_ffmpeg_encode_success(tmp_path):
    dest = tmp_path / "out.mp4"
    dest.write_bytes(b"video")

    with patch("subprocess.Popen") as mock_popen:
        _mock_process(mock_popen, ["frame= 100 fps=10.0 q=26.0 size= 100kB time=00:00:05.00\n"])
        FFmpegAdapter().encode(tmp_path / "in.mov", dest, timeout=60)

        assert mock_popen.called
    assert dest.exists()


def test_ffmpeg_encode_failure_reports_output_tail(tmp_path):
    dest = tmp_path / "out.mp4"
    dest.write_bytes(b"partial")

    with patch("subprocess.Popen") as mock_popen:
        _mock_process(mock_popen, ["Invalid data found when processing input\n"], returncode=1)
        with pytest.raises(EncoderError) as exc_info:
            FFmpegAdapter().encode(tmp_path / "in.mov", dest)

    assert "code 1" in str(exc_info.value)
    assert "Invalid data found" in str(exc_info.value)
    assert not dest.exists()


def test_ffmpeg_success_without_output_is_error(tmp_path):
    with patch("subprocess.Popen") as mock_popen:
        _mock_process(mock_popen, [])
        with pytest.raises(EncoderError, match="no output"):
            FFmpegAdapter().encode(tmp_path / "in.mov", tmp_path / "out.mp4")


def test_ffmpeg_cannot_start(tmp_path):
    with patch("subprocess.Popen", side_effect=FileNotFoundError("ffmpeg")):
        with pytest.raises(EncoderError, match="Cannot start"):
            FFmpegAdapter().encode(tmp_path / "in.mov", tmp_path / "out.mp4")


def test_ffmpeg_cancellation_stops_process(tmp_path):
    token = CancellationToken()
    token.cancel()

    with patch("subprocess.Popen") as mock_popen:
        process_instance = _mock_process(mock_popen, [])
        with pytest.raises(Cancelled):
            FFmpegAdapter().encode(tmp_path / "in.mov", tmp_path / "out.mp4", cancel=token)

        process_instance.terminate.assert_called_once()


def test_ffmpeg_timeout_stops_process(tmp_path):
    with patch("subprocess.Popen") as mock_popen:
        process_instance = _mock_process(mock_popen, [])
        with pytest.raises(ProcessingTimeout) as exc_info:
            FFmpegAdapter().encode(tmp_path / "in.mov", tmp_path / "out.mp4", timeout=0)

        process_instance.terminate.assert_called_once()
    assert exc_info.value.limit_seconds == 0
