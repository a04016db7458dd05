"""Platform-specific ffmpeg argument vocabulary for webcam capture.

Each backend knows how ffmpeg addresses a capture device on its platform
(DirectShow on Windows, AVFoundation on macOS, Video4Linux2 on Linux),
how to build the capture command, and how to read the device list.
"""

from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from webcam_stream.stream.types import DeviceDescriptor, DeviceKind
from webcam_stream.stream.settings import CaptureSettings


class CaptureBackend:
    """Base backend. Subclasses set ``input_format`` and the device selector."""

    input_format = ""

    def device_selector(self, device_id: str) -> str:
        return device_id

    def capture_command(
        self,
        device_id: str,
        settings: CaptureSettings,
        ffmpeg_path: str = "ffmpeg",
    ) -> List[str]:
        """ffmpeg invocation writing an MJPEG stream of ``device_id`` to stdout."""
        return [
            ffmpeg_path,
            "-hide_banner",
            "-f", self.input_format,
            "-video_size", settings.resolution,
            "-framerate", str(settings.frame_rate),
            "-i", self.device_selector(device_id),
            "-an",
            "-f", "mjpeg",
            "-q:v", str(settings.quality),
            "-",
        ]

    def list_command(self, ffmpeg_path: str = "ffmpeg") -> Optional[List[str]]:
        """Command whose stderr lists devices, or None if listing reads sysfs."""
        return None

    def parse_device_list(self, text: str) -> List[DeviceDescriptor]:
        return []


class DShowBackend(CaptureBackend):
    input_format = "dshow"

    # [dshow @ 000001...] "Integrated Webcam" (video)
    _DEVICE_RE = re.compile(r'\[dshow @[^\]]+\]\s+"([^"]+)"\s+\((video|audio)\)')

    def device_selector(self, device_id: str) -> str:
        return f"video={device_id}"

    def list_command(self, ffmpeg_path: str = "ffmpeg") -> Optional[List[str]]:
        return [ffmpeg_path, "-hide_banner", "-list_devices", "true", "-f", "dshow", "-i", "dummy"]

    def parse_device_list(self, text: str) -> List[DeviceDescriptor]:
        devices = []
        for line in text.splitlines():
            if "Alternative name" in line:
                continue
            match = self._DEVICE_RE.search(line)
            if match and match.group(2) == DeviceKind.VIDEO.value:
                name = match.group(1)
                devices.append(DeviceDescriptor(id=name, name=name, kind=DeviceKind.VIDEO))
        return devices


class AVFoundationBackend(CaptureBackend):
    input_format = "avfoundation"

    # [AVFoundation indev @ 0x7f8...] [0] FaceTime HD Camera
    _DEVICE_RE = re.compile(r"\]\s*\[(\d+)\]\s*(.+?)\s*$")

    def list_command(self, ffmpeg_path: str = "ffmpeg") -> Optional[List[str]]:
        return [ffmpeg_path, "-hide_banner", "-f", "avfoundation", "-list_devices", "true", "-i", ""]

    def parse_device_list(self, text: str) -> List[DeviceDescriptor]:
        devices = []
        in_video_section = False
        for line in text.splitlines():
            if "AVFoundation video devices:" in line:
                in_video_section = True
                continue
            if "AVFoundation audio devices:" in line:
                break
            if not in_video_section:
                continue
            match = self._DEVICE_RE.search(line)
            if match:
                devices.append(DeviceDescriptor(
                    id=match.group(1),
                    name=match.group(2),
                    kind=DeviceKind.VIDEO,
                ))
        return devices


class V4L2Backend(CaptureBackend):
    input_format = "v4l2"

    def __init__(self, sysfs_root: Path = Path("/sys/class/video4linux")) -> None:
        self.sysfs_root = Path(sysfs_root)

    def device_selector(self, device_id: str) -> str:
        if device_id.startswith("/dev/") or device_id.startswith("/"):
            return device_id
        if device_id.isdigit():
            return f"/dev/video{device_id}"
        return f"/dev/{device_id}"

    def scan_sysfs(self) -> List[DeviceDescriptor]:
        """Capture nodes under video4linux, skipping metadata nodes."""
        if not self.sysfs_root.exists():
            return []

        devices = []
        for node in sorted(self.sysfs_root.iterdir(), key=_video_node_order):
            if not node.name.startswith("video"):
                continue
            index_path = node / "index"
            if index_path.exists():
                try:
                    if int(index_path.read_text().strip()) != 0:
                        continue
                except ValueError:
                    pass
            name_path = node / "name"
            name = name_path.read_text().strip() if name_path.exists() else ""
            dev_path = f"/dev/{node.name}"
            devices.append(DeviceDescriptor(id=dev_path, name=name or dev_path, kind=DeviceKind.VIDEO))
        return devices


def _video_node_order(path: Path) -> tuple:
    digits = path.name[len("video"):]
    return (0, int(digits)) if digits.isdigit() else (1, path.name)


_BACKENDS = {
    DShowBackend.input_format: DShowBackend,
    AVFoundationBackend.input_format: AVFoundationBackend,
    V4L2Backend.input_format: V4L2Backend,
}

INPUT_FORMATS: Sequence[str] = tuple(_BACKENDS)


def get_backend(input_format: str = "auto", platform: Optional[str] = None) -> CaptureBackend:
    """Backend for ``input_format``, or for the current platform when ``auto``."""
    if input_format and input_format != "auto":
        try:
            return _BACKENDS[input_format]()
        except KeyError:
            raise ValueError(f"Unknown input format '{input_format}'") from None

    platform = platform or sys.platform
    if platform == "win32":
        return DShowBackend()
    if platform == "darwin":
        return AVFoundationBackend()
    return V4L2Backend()


__all__ = [
    "AVFoundationBackend",
    "CaptureBackend",
    "DShowBackend",
    "INPUT_FORMATS",
    "V4L2Backend",
    "get_backend",
]
