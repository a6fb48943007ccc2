import os
import re
from typing import Dict


CONTENT_TYPES: Dict[str, str] = {
    '.mp4': 'video/mp4',
    '.mov': 'video/quicktime',
    '.mp3': 'audio/mpeg',
    '.wav': 'audio/wav',
    '.aac': 'audio/aac',
    '.opus': 'audio/opus',
    '.flac': 'audio/flac',
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.ass': 'text/x-ssa',
    '.srt': 'application/x-subrip',
}


def format_ass_time(seconds: float) -> str:
    """Format seconds as H:MM:SS.cc"""
    total_cs = int(round(max(seconds, 0.0) * 100))
    hours, rem = divmod(total_cs, 360000)
    minutes, rem = divmod(rem, 6000)
    secs, cs = divmod(rem, 100)
    return f"{hours}:{minutes:02d}:{secs:02d}.{cs:02d}"


def format_srt_time(seconds: float) -> str:
    """Format seconds as HH:MM:SS,mmm"""
    total_ms = int(round(max(seconds, 0.0) * 1000))
    hours, rem = divmod(total_ms, 3600000)
    minutes, rem = divmod(rem, 60000)
    secs, ms = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{ms:03d}"


def hex_to_rgb(color: str) -> tuple:
    color = color.lstrip('#')
    return int(color[0:2], 16), int(color[2:4], 16), int(color[4:6], 16)


def hex_to_ass_color(color: str, opacity: float = 1.0) -> str:
    """
    Convert #RRGGBB to an ASS colour.

    ASS stores colours as &HAABBGGRR& where alpha 00 is opaque; the alpha
    byte is only emitted for partially transparent colours.
    """
    r, g, b = hex_to_rgb(color)
    if opacity >= 1.0:
        return f"&H{b:02X}{g:02X}{r:02X}&"
    alpha = int(round((1.0 - max(opacity, 0.0)) * 255))
    return f"&H{alpha:02X}{b:02X}{g:02X}{r:02X}&"


def ensure_dir(path: str):
    """Ensure directory exists"""
    os.makedirs(path, exist_ok=True)


def get_file_size_bytes(file_path: str) -> int:
    try:
        return os.path.getsize(file_path)
    except OSError:
        return 0


def guess_content_type(file_path: str) -> str:
    """Infer the upload content type from the file extension"""
    ext = os.path.splitext(file_path)[1].lower()
    return CONTENT_TYPES.get(ext, 'application/octet-stream')


def clean_filename(filename: str) -> str:
    """Clean filename for safe filesystem usage"""
    # Remove or replace unsafe characters
    filename = re.sub(r'[<>:"/\\|?*\s]', '_', filename)
    # Remove multiple underscores
    filename = re.sub(r'_+', '_', filename)
    # Remove leading/trailing underscores and dots
    filename = filename.strip('_.')
    return filename or 'unnamed'


def normalize_word(word: str) -> str:
    """Lowercase a word and strip surrounding punctuation"""
    return re.sub(r"^[^\w']+|[^\w']+$", '', word.lower())
