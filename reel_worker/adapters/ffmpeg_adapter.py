"""
FFmpeg-backed media engine.

Stream graphs are built by separate ``build_*`` methods so callers and
tests can inspect the exact command line through ``compile()`` before
anything is executed.
"""

import logging

import ffmpeg

from .base import MediaEngine, MuxRequest
from ..errors import MediaEngineError

logger = logging.getLogger("reel_worker")


def _stderr_text(error: ffmpeg.Error) -> str:
    return error.stderr.decode(errors="replace") if error.stderr else ""


class FFmpegEngine(MediaEngine):
    """Media engine driving the ffmpeg binary through ffmpeg-python"""

    def __init__(self, preset: str = "medium", crf: int = 23, audio_bitrate: str = "192k"):
        self.preset = preset
        self.crf = crf
        self.audio_bitrate = audio_bitrate

    def probe_duration(self, media_path: str) -> float:
        try:
            probe = ffmpeg.probe(media_path)
        except ffmpeg.Error as e:
            stderr = _stderr_text(e)
            raise MediaEngineError(f"FFmpeg could not probe {media_path}: {stderr}", stderr)

        duration = probe.get('format', {}).get('duration')
        if duration is None:
            # some containers only report per-stream durations
            durations = [float(s['duration']) for s in probe.get('streams', []) if s.get('duration')]
            duration = max(durations) if durations else 0.0
        return float(duration)

    def build_motion_stream(self, image_path: str, output_path: str, duration: float,
                            width: int, height: int, zoom_rate: float, fps: int):
        """Still image to video with zoompan over ``duration`` seconds"""
        frames = max(1, int(round(duration * fps)))
        return (
            ffmpeg
            .input(image_path)
            .filter('scale', width, height, force_original_aspect_ratio='increase')
            .filter('crop', width, height)
            .filter('zoompan', z=f"1+{zoom_rate}*on", d=frames, s=f"{width}x{height}", fps=fps)
            .output(
                output_path,
                vcodec='libx264',
                pix_fmt='yuv420p',
                preset=self.preset,
                r=fps,
                t=duration
            )
            .overwrite_output()
        )

    def render_motion(self, image_path: str, output_path: str, duration: float,
                      width: int, height: int, zoom_rate: float, fps: int) -> str:
        stream = self.build_motion_stream(image_path, output_path, duration, width, height, zoom_rate, fps)
        logger.info(f"Rendering {duration:.1f}s motion background -> {output_path}")
        try:
            stream.run(quiet=True)
        except ffmpeg.Error as e:
            stderr = _stderr_text(e)
            raise MediaEngineError(f"FFmpeg error rendering motion background: {stderr}", stderr)
        return output_path

    def build_mux_stream(self, request: MuxRequest):
        """Background scaled and cropped to the frame, captions burned in, narration mixed"""
        background = ffmpeg.input(request.background_path)
        narration = ffmpeg.input(request.audio_path)

        video = (
            background.video
            .filter('scale', request.width, request.height, force_original_aspect_ratio='increase')
            .filter('crop', request.width, request.height)
            .filter('setsar', 1)
        )

        if request.subtitles_path:
            if request.force_style:
                video = video.filter('subtitles', request.subtitles_path, force_style=request.force_style)
            else:
                video = video.filter('subtitles', request.subtitles_path)
        elif request.overlay_pattern:
            overlay = ffmpeg.input(request.overlay_pattern, framerate=request.overlay_fps or 25)
            video = ffmpeg.overlay(video, overlay, x=0, y=0, eof_action='pass')

        return (
            ffmpeg
            .output(
                video,
                narration.audio,
                request.output_path,
                vcodec='libx264',
                acodec='aac',
                pix_fmt='yuv420p',
                preset=self.preset,
                crf=self.crf,
                audio_bitrate=self.audio_bitrate,
                movflags='+faststart',
                shortest=None
            )
            .overwrite_output()
        )

    def mux(self, request: MuxRequest) -> str:
        stream = self.build_mux_stream(request)
        logger.info(f"Muxing {request.background_path} + {request.audio_path} -> {request.output_path}")
        try:
            stream.run(quiet=True)
        except ffmpeg.Error as e:
            stderr = _stderr_text(e)
            raise MediaEngineError(f"FFmpeg error muxing final video: {stderr}", stderr)
        return request.output_path
