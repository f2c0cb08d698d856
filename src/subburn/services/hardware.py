"""
VAAPI capability detection.

The probe is expensive (it spins up the GPU encoder), so the answer is cached
on the prober instance until `reset()`. Every failure mode reports
"unavailable"; the software path is always a valid fallback.
"""

from __future__ import annotations

import shutil
import subprocess
import threading
from typing import Callable

from subburn.domain.media import HardwareCapability
from subburn.exceptions import HardwareProbeError
from subburn.utils.checks import device_accessible
from subburn.utils.ffmpeg import build_hw_probe_cmd
from subburn.utils.logging import get_logger
from subburn.utils.timing import Clock, utc_now

log = get_logger(__name__)

ProbeFn = Callable[[str, str, float], None]


def run_vaapi_probe(device: str, encoder: str, timeout: float) -> None:
    """Raise HardwareProbeError unless one synthetic frame encodes on `device`."""
    if not device_accessible(device):
        raise HardwareProbeError(f"VAAPI device {device} missing or not accessible")
    ffmpeg = shutil.which("ffmpeg")
    if not ffmpeg:
        raise HardwareProbeError("ffmpeg not found")
    cmd = build_hw_probe_cmd(device, encoder)
    cmd[0] = ffmpeg
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        raise HardwareProbeError(f"{encoder} probe timed out after {timeout:.0f}s") from exc
    except OSError as exc:
        raise HardwareProbeError(f"{encoder} probe could not start: {exc}") from exc
    if proc.returncode != 0:
        detail = (proc.stderr or "").strip().splitlines()
        raise HardwareProbeError(
            f"{encoder} probe failed: {detail[-1] if detail else proc.returncode}"
        )


class HardwareProber:
    """Cached, thread-safe answer to "can we encode on the GPU?"."""

    def __init__(
        self,
        device: str = "/dev/dri/renderD128",
        *,
        encoder: str = "h264_vaapi",
        timeout: float = 10.0,
        enabled: bool = True,
        probe: ProbeFn | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self.device = device
        self.encoder = encoder
        self.timeout = timeout
        self.enabled = enabled
        self._probe = probe or run_vaapi_probe
        self._clock = clock
        self._lock = threading.Lock()
        self._cached: HardwareCapability | None = None

    def capability(self) -> HardwareCapability:
        with self._lock:
            if self._cached is None:
                self._cached = self._detect()
            return self._cached

    def available(self) -> bool:
        return self.capability().available

    def reset(self) -> None:
        with self._lock:
            self._cached = None

    def _detect(self) -> HardwareCapability:
        if not self.enabled:
            return HardwareCapability(
                available=False, probed_at=self._clock(), reason="disabled by configuration"
            )
        try:
            self._probe(self.device, self.encoder, self.timeout)
        except HardwareProbeError as exc:
            log.info("Hardware encoding unavailable: %s", exc.message)
            return HardwareCapability(available=False, probed_at=self._clock(), reason=exc.message)
        log.info("Hardware encoding available via %s on %s", self.encoder, self.device)
        return HardwareCapability(available=True, probed_at=self._clock(), encoder=self.encoder)
